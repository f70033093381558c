class CineMindError(Exception):
    code: str = "cinemind_error"

    def __init__(self, message: str = "", *, code: str | None = None):
        super().__init__(message or self.__class__.__name__)
        if code: self.code = code

class DimensionMismatch(CineMindError):
    code = "dimension_mismatch"

class EmptyInput(CineMindError):
    code = "empty_input"

class InvalidDislikeWeight(CineMindError):
    code = "invalid_dislike_weight"

class GenreLookupError(CineMindError):
    code = "genre_lookup_failed"

    def __init__(self, item_id: int, message: str = ""):
        super().__init__(message or f"genre lookup failed for item {item_id}")
        self.item_id = item_id
