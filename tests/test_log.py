from thermobridge.core.log import LOG__DEBUG, LOG__MEASUREMENT, get_logger, print_and_log, set_level


def test_general_lines_are_echoed(capsys):
    print_and_log("[*] hello")
    assert capsys.readouterr().out == "[*] hello\n"


def test_other_channels_stay_quiet(capsys):
    print_and_log("[DEBUG] detail", LOG__DEBUG)
    print_and_log("[measurement] 37.0", LOG__MEASUREMENT)
    assert capsys.readouterr().out == ""


def test_get_logger_names():
    assert get_logger().name == "thermobridge"
    assert get_logger("thermobridge.profile.device").name == "thermobridge.profile.device"
    assert get_logger("custom").name == "thermobridge.custom"


def test_set_level_accepts_names():
    set_level("debug")
    assert get_logger().level == 10
    set_level("INFO")
    assert get_logger().level == 20
