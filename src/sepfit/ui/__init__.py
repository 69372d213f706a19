"""Terminal and log-file output for SepFit."""

from sepfit.ui.logging import close_logging, log, log_dict, log_section, setup_logging

__all__ = ["close_logging", "log", "log_dict", "log_section", "setup_logging"]
