"""Tests for wiretap._errors."""

from wiretap._errors import (
    BroadcastError,
    CaptureError,
    ConfigError,
    WiretapError,
)


class TestErrorHierarchy:
    """All wiretap errors inherit from WiretapError."""

    def test_wiretap_error_is_exception(self) -> None:
        assert issubclass(WiretapError, Exception)

    def test_config_error_inherits(self) -> None:
        assert issubclass(ConfigError, WiretapError)

    def test_capture_error_inherits(self) -> None:
        assert issubclass(CaptureError, WiretapError)

    def test_broadcast_error_inherits(self) -> None:
        assert issubclass(BroadcastError, WiretapError)

    def test_catch_all_wiretap_errors(self) -> None:
        for error_cls in (ConfigError, CaptureError, BroadcastError):
            try:
                raise error_cls("test")
            except WiretapError:
                pass
