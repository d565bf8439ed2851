# impress/domain/errors.py
class ImpressError(Exception):
    """Base class for zone-system errors."""


class InvalidUnit(ImpressError, ValueError):
    def __init__(self, unit):
        super().__init__(f"Unknown unit: {unit!r}")
        self.unit = unit


class GeometryError(ImpressError, ValueError):
    """A rectangle does not fit the page it is placed on."""


class DuplicateAssignment(ImpressError):
    def __init__(self, zone_id: str, page_id: str):
        super().__init__(f"Zone {zone_id} is already placed on page {page_id}")
        self.zone_id = zone_id
        self.page_id = page_id


class NotFound(ImpressError, LookupError):
    def __init__(self, kind: str, key):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class InvalidZoneType(ImpressError, ValueError):
    def __init__(self, zone_type):
        super().__init__(f"Unknown zone type: {zone_type!r}")
        self.zone_type = zone_type
