__version__ = "1.0.0"

USER_AGENT = f"Upton/{__version__}"
