class DataProcessingError(Exception):
    """Raised when something goes wrong in the replenishment pipeline."""
    def __init__(self, message):
        super().__init__(message)
        self.message = message


class TabularReadError(DataProcessingError):
    """Raised when an input file cannot be read as a table (missing, unsupported or corrupt)."""


class UploadValidationError(DataProcessingError):
    """Raised when an uploaded file fails validation (e.g., missing headers, no valid rows)."""


class CalculationError(DataProcessingError):
    """Raised when a single product cannot be calculated."""
