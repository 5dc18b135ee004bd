class FatalConfigError(Exception):
    """Raised when a calculation cannot proceed because configuration is missing or broken.

    Fatal for the single calculation that hit it; bulk runs record it against
    the affected employee and carry on.
    """

    def __init__(self, message: str, tax_year: str = None):
        super().__init__(message)
        self.tax_year = tax_year
