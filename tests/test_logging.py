"""structlog setup."""

import json

import pytest
import structlog

from storefront import configure_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_json_lines(self, capsys):
        configure_logging("INFO", json=True)

        structlog.get_logger("storefront.test").info("cart_replaced", cart_id="cart_1")

        line = json.loads(capsys.readouterr().err.strip())
        assert line["event"] == "cart_replaced"
        assert line["cart_id"] == "cart_1"
        assert line["level"] == "info"
        assert "timestamp" in line

    def test_level_filter(self, capsys):
        configure_logging("WARNING")

        log = structlog.get_logger("storefront.test")
        log.info("hidden")
        log.warning("shown")

        err = capsys.readouterr().err
        assert "hidden" not in err
        assert "shown" in err

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            configure_logging("chatty")
