import logging
import re

_SIGNED_QUERY = re.compile(r"(https?://[^\s?]+)\?[^\s]*(X-Amz-Signature|Signature)=[^\s]*")


class SecretsFilter(logging.Filter):
    """Keep credentials and presigned query strings out of log output."""

    BLOCKED_KEYS = {"s3_secret_access_key", "s3_access_key_id", "upload_url"}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.BLOCKED_KEYS:
            if hasattr(record, key):
                setattr(record, key, "[REDACTED]")
        if isinstance(record.msg, str) and "Signature" in record.msg:
            record.msg = _SIGNED_QUERY.sub(r"\1?[REDACTED]", record.msg)
        return True


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = logging.getLogger()
    if not any(isinstance(existing, SecretsFilter) for existing in root.filters):
        root.addFilter(SecretsFilter())
