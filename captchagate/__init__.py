"""captchagate: five-digit image challenges with single-use verification."""

__version__ = "0.1.0"
