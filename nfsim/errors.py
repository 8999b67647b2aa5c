# File location: nfsim/errors.py
# Error taxonomy for the NF simulation engine
# Every error carries a user-facing message; none of them is fatal to the process


class SimulationError(Exception):
    """Base class for all simulator errors"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SimulationError):
    """Malformed address, port out of range, missing required field"""

    status_code = 400


class ConflictError(SimulationError):
    """Address or port already in use, or an NF of the requested type already exists"""

    status_code = 409


class NotFoundError(SimulationError):
    """Unknown service name, unknown NF or unknown ping source"""

    status_code = 404


class StateError(SimulationError):
    """Operation rejected because an equivalent one is already in flight"""

    status_code = 409


class ExternalResourceError(SimulationError):
    """Topology fixture could not be fetched or parsed"""

    status_code = 502


class AllocationExhaustedError(SimulationError):
    """Every address pool or port range, fallbacks included, is in use"""

    status_code = 503
