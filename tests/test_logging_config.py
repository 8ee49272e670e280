"""Tests for logging setup and sanitization helpers."""

import gzip

from loguru import logger

from src.logging_config import mask_customer_id, redact_url, sanitize_for_log, setup_logging


class TestMaskCustomerId:
    def test_masks_middle(self):
        assert mask_customer_id("cust_123456") == "cuXXXX3456"

    def test_short_ids_fully_masked(self):
        assert mask_customer_id("c_1") == "XXXX"
        assert mask_customer_id("") == "XXXX"


class TestRedactUrl:
    def test_api_key_removed(self):
        url = "wss://api.murf.ai/v1/speech/stream-input?api-key=secret123&sample_rate=24000"

        redacted = redact_url(url)

        assert "secret123" not in redacted
        assert "api-key=[REDACTED]&sample_rate=24000" in redacted

    def test_url_without_key_unchanged(self):
        assert redact_url("https://example.com/a?b=c") == "https://example.com/a?b=c"


class TestSanitizeForLog:
    def test_sensitive_fields(self):
        data = {
            "customer_id": "cust_987654",
            "customer_info": {"email": "a@example.com"},
            "groq_api_key": "gsk_live",
            "language": "en",
            "project": {"id": "proj_1", "partner_api_key": "k"},
        }

        result = sanitize_for_log(data)

        assert result["customer_id"] == "cuXXXX7654"
        assert result["customer_info"] == "[REDACTED]"
        assert result["groq_api_key"] == "[REDACTED]"
        assert result["language"] == "en"
        assert result["project"] == {"id": "proj_1", "partner_api_key": "[REDACTED]"}

    def test_input_not_mutated(self):
        data = {"customer_id": "cust_987654"}
        sanitize_for_log(data)
        assert data == {"customer_id": "cust_987654"}


class TestSetupLogging:
    def test_file_sinks(self, tmp_path):
        log_dir = tmp_path / "logs"

        setup_logging(level="DEBUG", log_dir=log_dir, enable_file=True, diagnose=False)
        logger.error("upstream refused the handshake")
        setup_logging(level="INFO", enable_file=False)

        names = sorted(p.name for p in log_dir.iterdir())
        assert any(n.startswith("carevoice_") for n in names)
        assert any(n.startswith("errors_") for n in names)
        # Closed sinks are compressed
        errors = next(p for p in log_dir.iterdir() if p.name.startswith("errors_"))
        with gzip.open(errors, "rt") as f:
            assert "upstream refused the handshake" in f.read()
