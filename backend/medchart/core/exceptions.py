"""Domain errors raised by the charting services and mapped to HTTP codes by the API."""


class ChartingError(Exception):
    """Base class for charting domain errors."""


class AuthorizationError(ChartingError):
    pass


class UnknownPatientError(ChartingError, LookupError):
    def __init__(self, patient_id: str):
        super().__init__(f"Patient {patient_id} not found")
        self.patient_id = patient_id


class UnknownMedicineError(ChartingError, LookupError):
    def __init__(self, medicine_id: str):
        super().__init__(f"Medicine {medicine_id} not found")
        self.medicine_id = medicine_id


class ConflictError(ChartingError):
    """A write would violate a uniqueness rule."""


class PatientIdConflictError(ConflictError):
    pass


class PatientIdExhaustedError(ConflictError):
    pass


class MedicineIdConflictError(ConflictError):
    pass


class DuplicatePrescriptionError(ConflictError):
    pass


class DuplicateAdministrationError(ConflictError):
    """A second successful administration for the same patient and medicine."""
