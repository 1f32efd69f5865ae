# The module defines the Bizum tool: simulated peer-to-peer payments that are
# only committed after the user confirms them out of band.
# Version: 0.1.0

import hashlib
import random
import string
import time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from pydantic import BaseModel, Field
from redis.exceptions import RedisError
from typing import Any, Dict, List, Literal, Optional, Tuple, Type
from .base_tool import BaseTool
from .contacts_tool import AmbiguousContact, ContactsTool
from ai_agent.core.config import get_settings
from ai_agent.core.exceptions import ConfirmationError, ConfirmationNotFoundError
from ai_agent.models.domain import Transaction, TransactionData, utcnow
from ai_agent.services.confirmation_manager import ConfirmationManager
from ai_agent.services.user_store import UserStore
from ai_agent.utils.logger import console
from ai_agent.utils.phone import normalize_phone

HISTORY_PAGE_SIZE = 10

RECIPIENT_SUGGESTION = (
    "Indica directamente un número de teléfono español (+34XXXXXXXXX o 6XXXXXXXX), "
    "o busca primero el contacto con la acción 'lookup' para obtener su teléfono."
)


def generate_transaction_id() -> str:
    timestamp = str(int(time.time() * 1000))[-8:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"BZ{timestamp}{suffix}"


class BizumInput(BaseModel):
    """
    Input model for the BizumTool.
    Attributes:
        action (str): send, request, history or lookup.
        amount (float): Euros to send or request.
        recipient (str): Phone number of the other party (a name only for 'lookup').
        concept (str): Free-text concept shown to the recipient.
    """
    action: Literal["send", "request", "history", "lookup"] = Field(
        default="send",
        description="Acción a realizar: send (enviar), request (solicitar), history (historial), "
                    "lookup (buscar el teléfono de un contacto por nombre)",
    )
    amount: Optional[float] = Field(default=None, description="Cantidad en euros (mínimo 0.01€, máximo 1000€)")
    recipient: Optional[str] = Field(
        default=None,
        description="Número de teléfono del destinatario. Para 'lookup', el nombre o alias del contacto",
    )
    concept: str = Field(default="Bizum", description="Concepto del envío (opcional)")


class BizumTool(BaseTool):
    """
    Simulated Bizum transfers with a two-phase commit.

    send/request only validate and park the transaction in the confirmation
    manager; nothing is stored until confirm_transaction() is called with
    confirmed=True. Recipients must be phone numbers: names are rejected and
    the model is pointed to the explicit 'lookup' action instead.
    """
    name: str = "bizum"
    description: str = (
        "Simula envíos y solicitudes de dinero mediante Bizum a un número de teléfono. "
        "Los envíos quedan pendientes de confirmación del usuario. "
        "Usa action='lookup' para obtener el teléfono de un contacto por su nombre."
    )
    args_schema: Type[BaseModel] = BizumInput
    examples = [
        "Envía 25€ a +34612345678",
        "Quiero hacer un Bizum de 50 euros a María",
        "Solicita 30€ a Pedro",
        "Muestra mi historial de Bizum",
    ]

    def __init__(self, store: Optional[UserStore] = None, contacts: Optional[ContactsTool] = None,
                 confirmations: Optional[ConfirmationManager] = None,
                 min_amount: Optional[float] = None, max_amount: Optional[float] = None,
                 max_stored_transactions: Optional[int] = None):
        super().__init__()
        settings = get_settings()
        self._store = store if store is not None else UserStore("bizum_transactions")
        self._contacts = contacts
        self.confirmations = confirmations if confirmations is not None else ConfirmationManager()
        self.min_amount = Decimal(str(min_amount if min_amount is not None else settings.BIZUM_MIN_AMOUNT))
        self.max_amount = Decimal(str(max_amount if max_amount is not None else settings.BIZUM_MAX_AMOUNT))
        self.max_stored_transactions = (
            max_stored_transactions if max_stored_transactions is not None
            else settings.BIZUM_MAX_STORED_TRANSACTIONS
        )

    async def execute(self, user_id: str, action: str = "send", amount: Any = None,
                      recipient: Optional[str] = None, concept: Optional[str] = "Bizum") -> Dict[str, Any]:
        if action == "history":
            return await self.get_history(user_id)
        if action == "lookup":
            return await self.lookup_recipient(user_id, recipient)
        if action in ("send", "request"):
            return await self.propose(user_id, action, amount, recipient, concept)
        return {"success": False, "error": f"Acción no válida: {action}", "error_code": "invalid_action"}

    # --- Validation --------------------------------------------------------

    def validate_amount(self, amount: Any) -> Tuple[Optional[float], Optional[str]]:
        """Returns (amount rounded to cents, None) or (None, error message)."""
        if amount is None or isinstance(amount, bool):
            return None, "Debe indicar la cantidad del Bizum"
        try:
            value = Decimal(str(amount).replace(",", ".").replace("€", "").strip())
        except InvalidOperation:
            return None, "La cantidad no es un número válido"
        if not value.is_finite():
            return None, "La cantidad no es un número válido"
        if value <= 0:
            return None, "La cantidad debe ser mayor que 0€"
        if value > self.max_amount:
            return None, f"El límite máximo por transacción es {self.max_amount:g}€"
        if value < self.min_amount:
            return None, f"La cantidad mínima es {self.min_amount}€"
        return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)), None

    @staticmethod
    def validate_recipient(recipient: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
        """Returns (canonical phone, None) or (None, error message)."""
        if recipient is None or not str(recipient).strip():
            return None, "Debe especificar un destinatario"
        phone = normalize_phone(str(recipient))
        if phone is None:
            return None, (
                f'"{str(recipient).strip()}" no es un número de teléfono válido. '
                "Bizum solo acepta números de teléfono españoles."
            )
        return phone, None

    # --- Propose -----------------------------------------------------------

    async def propose(self, user_id: str, action: str, amount: Any, recipient: Optional[str],
                      concept: Optional[str] = "Bizum") -> Dict[str, Any]:
        rounded, amount_error = self.validate_amount(amount)
        if amount_error:
            console.warning(f"Bizum rejected for '{user_id}': {amount_error}")
            return {"success": False, "error": amount_error, "error_code": "invalid_amount"}

        phone, recipient_error = self.validate_recipient(recipient)
        if recipient_error:
            console.warning(f"Bizum rejected for '{user_id}': {recipient_error}")
            return {
                "success": False,
                "error": recipient_error,
                "error_code": "invalid_recipient",
                "suggestion": RECIPIENT_SUGGESTION,
            }

        contact = await self._contacts.find_by_phone(user_id, phone) if self._contacts else None
        data = TransactionData(
            id=generate_transaction_id(),
            user_id=user_id,
            type=action,
            amount=rounded,
            recipient=contact.name if contact else phone,
            recipient_phone=phone,
            from_contact=contact is not None,
            concept=(concept or "").strip() or "Bizum",
        )
        self.confirmations.sweep_expired()
        pending = self.confirmations.create(data)

        verb, preposition = ("enviar", "a") if action == "send" else ("solicitar", "de")
        return {
            "success": True,
            "requires_confirmation": True,
            "confirmation_type": "bizum_confirmation",
            "confirmation_id": pending.confirmation_id,
            "expires_at": pending.expires_at.isoformat(),
            "message": "🔐 Confirma el Bizum para completarlo",
            "details": (
                f"Vas a {verb} {data.amount:.2f}€ {preposition} {data.recipient} ({data.recipient_phone}). "
                f"Concepto: {data.concept}"
            ),
            "transaction_data": {
                "type": data.type,
                "amount": data.amount,
                "recipient": data.recipient,
                "recipient_phone": data.recipient_phone,
                "from_contact": data.from_contact,
                "concept": data.concept,
            },
        }

    # --- Confirm -----------------------------------------------------------

    async def confirm_transaction(self, user_id: str, confirmation_id: str, confirmed: bool,
                                  signature: Optional[str] = None) -> Dict[str, Any]:
        """Second phase of a Bizum: executes or cancels a pending transaction exactly once."""
        try:
            pending = self.confirmations.get(confirmation_id)
            if pending.transaction_data.user_id != user_id:
                raise ConfirmationNotFoundError(confirmation_id)
            pending = self.confirmations.resolve(confirmation_id)
        except ConfirmationError as e:
            console.warning(f"Confirmation for '{user_id}' failed: {e}")
            return {"success": False, "error": str(e), "error_code": e.error_code}

        data = pending.transaction_data
        if not confirmed:
            console.info(f"Bizum {data.id} cancelled by user '{user_id}'.")
            return {
                "success": True,
                "cancelled": True,
                "message": "❌ Bizum cancelado",
                "details": f"No se ha realizado el Bizum de {data.amount:.2f}€ a {data.recipient}",
            }

        transaction = Transaction(
            **data.model_dump(),
            signature=signature or self._sign(data),
            confirmed_at=utcnow(),
        )
        try:
            await self._append_transaction(user_id, transaction)
        except RedisError:
            console.exception(f"Could not store Bizum {data.id}; keeping it pending.")
            self.confirmations.restore(pending)
            return {"success": False, "error": "No se pudo registrar el Bizum. Inténtalo de nuevo.", "error_code": "storage_error"}

        done, preposition = ("enviado", "a") if data.type == "send" else ("solicitado", "de")
        console.success(f"Bizum {transaction.id} completed for user '{user_id}'.")
        return {
            "success": True,
            "message": f"✅ Bizum {done} correctamente",
            "details": f"Has {done} {transaction.amount:.2f}€ {preposition} {transaction.recipient}",
            "reference": f"Referencia: {transaction.id}",
            "transaction": self._summarize(transaction),
        }

    @staticmethod
    def _sign(data: TransactionData) -> str:
        payload = f"{data.id}:{data.user_id}:{data.amount:.2f}:{data.recipient_phone}:{data.created_at.isoformat()}"
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    async def _append_transaction(self, user_id: str, transaction: Transaction):
        async with self._store.locked(user_id):
            transactions = await self._store.load(user_id) or []
            transactions.append(transaction.model_dump(mode="json"))
            if len(transactions) > self.max_stored_transactions:
                transactions = transactions[-self.max_stored_transactions:]
            await self._store.save(user_id, transactions)

    async def list_transactions(self, user_id: str) -> List[Transaction]:
        async with self._store.locked(user_id):
            data = await self._store.load(user_id) or []
        return [Transaction.model_validate(entry) for entry in data]

    # --- History & lookup --------------------------------------------------

    async def get_history(self, user_id: str) -> Dict[str, Any]:
        try:
            transactions = await self.list_transactions(user_id)
        except RedisError as e:
            console.exception(f"Could not read the Bizum history of '{user_id}'.")
            return {"success": False, "error": f"Error al obtener el historial: {e}"}

        if not transactions:
            return {"success": True, "message": "No hay transacciones registradas", "transactions": []}

        # Stored oldest first, so the newest are at the end.
        latest = transactions[::-1][:HISTORY_PAGE_SIZE]
        return {
            "success": True,
            "message": f"Últimas {len(latest)} transacciones Bizum",
            "transactions": [self._summarize(t) for t in latest],
        }

    async def lookup_recipient(self, user_id: str, query: Optional[str]) -> Dict[str, Any]:
        """
        Explicit contacts-based resolution. It never proposes a payment: it only
        tells the model which phone number to use, or that the user must choose.
        """
        if self._contacts is None:
            return {"success": False, "error": "El directorio de contactos no está disponible"}
        if not query or not query.strip():
            return {"success": False, "error": "Debe indicar el nombre del contacto a buscar"}

        if normalize_phone(query):
            contact = await self._contacts.find_by_phone(user_id, query)
            if contact is None:
                return {"success": True, "message": "El número no está en tus contactos, pero es válido para Bizum",
                        "recipient_phone": normalize_phone(query)}
            return {"success": True, "contact": ContactsTool._public(contact)}

        result = await self._contacts.find_by_name_or_alias(user_id, query)
        if result is None:
            return {
                "success": False,
                "error": f'No se encontró ningún contacto que coincida con "{query}"',
                "error_code": "contact_not_found",
                "suggestion": "Agrega el contacto primero o indica directamente su número de teléfono.",
            }
        if isinstance(result, AmbiguousContact):
            return {
                "success": True,
                "needs_disambiguation": True,
                "message": f'Hay {len(result.matches)} contactos que coinciden con "{query}". Pregunta al usuario cuál quiere.',
                "matches": [ContactsTool._public(contact) for contact in result.matches],
            }
        return {
            "success": True,
            "message": f"Usa el teléfono {result.phone} para el Bizum a {result.name}",
            "contact": ContactsTool._public(result),
        }

    @staticmethod
    def _summarize(transaction: Transaction) -> Dict[str, Any]:
        return {
            "id": transaction.id,
            "type": "Envío" if transaction.type == "send" else "Solicitud",
            "amount": f"{transaction.amount:.2f}€",
            "recipient": transaction.recipient,
            "recipient_phone": transaction.recipient_phone,
            "concept": transaction.concept,
            "status": "Completado",
            "date": transaction.confirmed_at.strftime("%d/%m/%Y"),
            "time": transaction.confirmed_at.strftime("%H:%M:%S"),
        }
