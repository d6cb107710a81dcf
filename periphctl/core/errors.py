"""Domain-specific errors for periphctl."""


class PeriphctlError(Exception):
    """Base error for periphctl."""


class RoleRulesValidationError(PeriphctlError):
    """Raised when a role table does not conform to schema or semantics."""


class RoleRulesLoadError(PeriphctlError):
    """Raised when reading role table sources fails."""


class DeviceSelectionError(PeriphctlError):
    """Raised when a device hint cannot resolve a single attached device."""


class DeviceDiscoveryError(PeriphctlError):
    """Raised when USB enumeration fails as a whole."""


class DeviceRoleError(PeriphctlError):
    """Raised when a device fails re-classification for the requested role."""


class CapabilityError(PeriphctlError):
    """Raised when an external capability does not become available in time."""


class TransportError(PeriphctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the device or its endpoint cannot be claimed."""


class TransportSendError(TransportError):
    """Raised when a bulk or control transfer fails."""


class TransportTimeoutError(TransportError):
    """Raised when a transfer exceeds its timeout."""
