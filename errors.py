"""
Domain errors.

Every error carries the HTTP status the API answers with; the message is
meant to be shown to the user as is.
"""


class BarError(Exception):
    status_code = 400
    default_message = "Opération impossible"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(BarError):
    status_code = 404
    default_message = "Introuvable"


class InvalidQuantity(BarError):
    status_code = 422
    default_message = "Quantité invalide"


class InsufficientStock(BarError):
    status_code = 409
    default_message = "Stock insuffisant!"


class NothingToPay(BarError):
    status_code = 409
    default_message = "Aucune commande à payer"


class OccupiedTableDeletion(BarError):
    status_code = 409
    default_message = "Impossible de supprimer une table occupée!"


class DuplicateEmployeeCode(BarError):
    status_code = 409
    default_message = "Ce code est déjà utilisé"


class InvalidCodeFormat(BarError):
    status_code = 422
    default_message = "Le code doit contenir exactement 6 chiffres"


class InvalidCredentials(BarError):
    status_code = 401
    default_message = "Code incorrect"


class Forbidden(BarError):
    status_code = 403
    default_message = "Accès réservé aux gérants"


class StorageError(BarError):
    status_code = 503
    default_message = "Erreur de stockage, veuillez réessayer"
