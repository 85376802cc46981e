from .logger import (
	LockLogAdapter,
	JsonFormatter,
	TextFormatter,
	setup_logging,
	setup_logging_from_config,
)

__all__ = [
	"LockLogAdapter",
	"JsonFormatter",
	"TextFormatter",
	"setup_logging",
	"setup_logging_from_config",
]
