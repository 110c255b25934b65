from setuptools import setup, find_packages

# Check if PyGObject (gi) is already available system-wide
# This prevents pip from trying to build PyGObject from source when it's
# already installed via system package manager (apt, pacman, etc.)
_HAS_PYGOBJECT = False
try:
    import gi
    gi.require_version('GLib', '2.0')
    from gi.repository import GLib
    _HAS_PYGOBJECT = True
except (ImportError, ValueError, AttributeError):
    _HAS_PYGOBJECT = False

# Base requirements - always needed
install_requires = [
    "dbus-python>=1.2.0",
    "PyYAML>=6.0",
]

# The bridge runs on the GLib main loop; only require PyGObject from pip when
# the system does not already provide it
if not _HAS_PYGOBJECT:
    install_requires.append("PyGObject>=3.48.0")
    _extras = {"monitor": []}
else:
    _extras = {"monitor": ["PyGObject>=3.48.0"]}

_extras["test"] = ["pytest>=8.0.0"]

setup(
    name="thermobridge",
    version="1.0.0",
    description="BLE Health Thermometer to D-Bus watcher bridge",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=install_requires,
    extras_require=_extras,
    entry_points={
        'console_scripts': [
            'thermobridge=thermobridge.cli:main',
        ],
    },
    python_requires='>=3.8',
)
