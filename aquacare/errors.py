from __future__ import annotations


class AquacareError(Exception):
    """Base class for rejected aquarium operations."""


class ValidationError(AquacareError):
    pass


class InvalidQuantity(ValidationError):
    def __init__(self, quantity: object) -> None:
        super().__init__(f"Quantity must be a positive whole number, got {quantity!r}.")
        self.quantity = quantity


class InvalidVolume(ValidationError):
    def __init__(self, volume_liters: float) -> None:
        super().__init__(f"Volume must be greater than zero, got {volume_liters}.")
        self.volume_liters = volume_liters


class UnknownSpecies(AquacareError):
    def __init__(self, species_id: str) -> None:
        super().__init__(f"Species {species_id!r} was not found in the catalog.")
        self.species_id = species_id


class LimitExceeded(AquacareError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Aquarium limit of the current plan reached ({limit}).")
        self.limit = limit


class DuplicateEmail(AquacareError):
    def __init__(self, email: str) -> None:
        super().__init__(f"A user with email {email} already exists.")
        self.email = email
