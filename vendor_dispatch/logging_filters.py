# --- Global log sanitizer to keep PII out of log output ---------------------------
import logging, re

_SSN_RE  = re.compile(r'\b\d{3}-\d{2}-\d{4}\b')
_CARD_RE = re.compile(r'\b(?:\d[ -]?){12,15}(\d{4})\b')


def mask_sensitive(s: str) -> str:
    s = _SSN_RE.sub('***-**-****', s)
    return _CARD_RE.sub(lambda m: f"****-{m.group(1)}", s)


class _SensitiveValueFilter(logging.Filter):
    """Mask SSN- and card-number-looking values in the rendered message."""
    def filter(self, record: logging.LogRecord) -> bool:
        try:
            msg = record.getMessage()
            if isinstance(msg, str):
                masked = mask_sensitive(msg)
                if masked != msg:
                    record.msg = masked
                    record.args = ()
        except Exception:
            pass
        return True


def install_filters() -> None:
    for _name in ("", "uvicorn", "uvicorn.error"):
        lg = logging.getLogger(_name)
        if not any(isinstance(f, _SensitiveValueFilter) for f in lg.filters):
            lg.addFilter(_SensitiveValueFilter())


# install once on common loggers (root + uvicorn family)
install_filters()
# --------------------------------------------------------------------------------
