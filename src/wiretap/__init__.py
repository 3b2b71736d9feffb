"""Wiretap — live capture of a process's logs and outbound HTTP calls.

Records what a running program logs, prints and requests into bounded
in-memory history, and streams it to any number of WebSocket observers
that can pause, clear and reconfigure capture while the program runs.

Quick start::

    import wiretap

    handle = wiretap.start()      # ws://127.0.0.1:3001
    ...
    handle.shutdown()

Or from the command line::

    wiretap run app.py            # run a script under capture
    wiretap tail                  # watch a running capture

"""

# PEP 703: Declare this module as free-threading safe
_Py_mod_gil = 0

__version__ = "0.1.0-dev"
__all__ = [
    "WiretapConfig",
    "__version__",
    "active_session",
    "load_config",
    "shutdown",
    "start",
]


def __getattr__(name: str) -> object:
    """Lazy imports for the public API.

    Keeps ``import wiretap`` fast and free of side effects.
    """
    if name == "WiretapConfig":
        from wiretap.config import WiretapConfig

        return WiretapConfig

    if name == "load_config":
        from wiretap.config_loader import load_config

        return load_config

    if name == "start":
        from wiretap.session import start

        return start

    if name == "shutdown":
        from wiretap.session import shutdown

        return shutdown

    if name == "active_session":
        from wiretap.session import active_session

        return active_session

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)

