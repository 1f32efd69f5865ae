# The module defines the per-user contacts directory and the tool that manages it.
# Version: 0.1.0

import random
import string
import time
import unicodedata
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Type, Union
from .base_tool import BaseTool
from ai_agent.models.domain import Contact, utcnow
from ai_agent.services.user_store import UserStore
from ai_agent.utils.logger import console
from ai_agent.utils.phone import normalize_phone

INVALID_PHONE_MESSAGE = "Formato de teléfono no válido. Use formato español: +34XXXXXXXXX o 6XXXXXXXX"

# Every new user starts with this address book.
DEFAULT_CONTACTS = [
    {"id": "contact_001", "name": "María García", "phone": "+34678123456",
     "email": "maria.garcia@email.com", "alias": "María", "favorite": True},
    {"id": "contact_002", "name": "Pedro Martínez", "phone": "+34612987654",
     "email": "pedro.martinez@email.com", "alias": "Pedro", "favorite": False},
    {"id": "contact_003", "name": "Ana López", "phone": "+34654321098",
     "email": "ana.lopez@email.com", "alias": "Ana", "favorite": True},
    {"id": "contact_004", "name": "Carlos Ruiz", "phone": "+34687654321",
     "email": "carlos.ruiz@email.com", "alias": "Carlos", "favorite": False},
    {"id": "contact_005", "name": "Lucía Fernández", "phone": "+34643210987",
     "email": "lucia.fernandez@email.com", "alias": "Lucía", "favorite": True},
    {"id": "contact_006", "name": "Daniel Rangel", "phone": "+34644344744",
     "email": "", "alias": "Daniel", "favorite": False},
    {"id": "contact_007", "name": "Daniel Langa", "phone": "+34655355755",
     "email": "", "alias": "Daniel", "favorite": False},
]


def _fold(text: Optional[str]) -> str:
    """Lower-cases and strips accents so 'Lucia' finds 'Lucía'."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(char for char in decomposed if not unicodedata.combining(char)).lower().strip()


def generate_contact_id() -> str:
    timestamp = str(int(time.time() * 1000))[-8:]
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"contact_{timestamp}_{suffix}"


class AmbiguousContact(BaseModel):
    """Several contacts matched a name or alias; the user has to pick one."""
    query: str
    matches: List[Contact]


class ContactsInput(BaseModel):
    """
    Input model for the ContactsTool.
    Attributes:
        action (str): add, search, list, delete or update.
        name, phone, email, alias (str): Contact fields used by add/update/delete.
        query (str): Search term for the search action.
    """
    action: Literal["add", "search", "list", "delete", "update"] = Field(
        default="list", description="Acción a realizar: add, search, list, delete, update"
    )
    name: Optional[str] = Field(default=None, description="Nombre del contacto")
    phone: Optional[str] = Field(default=None, description="Número de teléfono del contacto")
    email: Optional[str] = Field(default=None, description="Email del contacto (opcional)")
    alias: Optional[str] = Field(default=None, description="Alias o apodo del contacto (opcional)")
    query: Optional[str] = Field(default=None, description="Término de búsqueda para encontrar contactos")


class ContactsTool(BaseTool):
    """
    Manages the user's address book. Besides the model-facing actions it
    exposes a small read-only directory API (find_by_name_or_alias,
    find_by_id, find_by_phone, list_all) used by other tools.
    """
    name: str = "contacts"
    description: str = "Gestiona la libreta de contactos del usuario (agregar, buscar, eliminar, listar contactos)"
    args_schema: Type[BaseModel] = ContactsInput
    examples = [
        "Muestra mis contactos",
        "Busca el contacto de Pedro",
        "Agrega a Ana a mis contactos",
        "¿Tienes el teléfono de María?",
    ]

    def __init__(self, store: Optional[UserStore] = None):
        super().__init__()
        self._store = store if store is not None else UserStore("contacts")

    # --- Persistence -------------------------------------------------------

    async def _load(self, user_id: str) -> List[Contact]:
        data = await self._store.load(user_id)
        if data is None:
            contacts = [Contact(**entry) for entry in DEFAULT_CONTACTS]
            await self._save(user_id, contacts)
            console.info(f"Seeded default contacts for user '{user_id}'.")
            return contacts
        return [Contact.model_validate(entry) for entry in data]

    async def _save(self, user_id: str, contacts: List[Contact]):
        await self._store.save(user_id, [contact.model_dump(mode="json") for contact in contacts])

    # --- Directory API -----------------------------------------------------

    async def list_all(self, user_id: str) -> List[Contact]:
        async with self._store.locked(user_id):
            return await self._load(user_id)

    async def find_by_id(self, user_id: str, contact_id: str) -> Optional[Contact]:
        for contact in await self.list_all(user_id):
            if contact.id == contact_id:
                return contact
        return None

    async def find_by_phone(self, user_id: str, phone: str) -> Optional[Contact]:
        normalized = normalize_phone(phone)
        if normalized is None:
            return None
        for contact in await self.list_all(user_id):
            if contact.phone == normalized:
                return contact
        return None

    async def find_by_name_or_alias(self, user_id: str, query: str) -> Union[None, Contact, AmbiguousContact]:
        """Returns None, the single matching contact, or every candidate when the query is ambiguous."""
        term = _fold(query)
        if not term:
            return None
        matches = [
            contact for contact in await self.list_all(user_id)
            if term in _fold(contact.name) or term in _fold(contact.alias)
        ]
        if not matches:
            return None
        if len(matches) == 1:
            return matches[0]
        return AmbiguousContact(query=query, matches=matches)

    # --- Tool entry point --------------------------------------------------

    async def execute(self, user_id: str, action: str = "list", name: Optional[str] = None,
                      phone: Optional[str] = None, email: Optional[str] = None,
                      alias: Optional[str] = None, query: Optional[str] = None) -> Dict[str, Any]:
        async with self._store.locked(user_id):
            if action == "add":
                return await self._add(user_id, name, phone, email, alias)
            if action == "search":
                return await self._search(user_id, query or name)
            if action == "list":
                return await self._list(user_id)
            if action == "delete":
                return await self._delete(user_id, name or query or phone)
            if action == "update":
                return await self._update(user_id, name, phone, email, alias)
        return {"success": False, "error": f"Acción no válida: {action}"}

    async def _add(self, user_id, name, phone, email, alias) -> Dict[str, Any]:
        if not name or not phone:
            return {"success": False, "error": "Nombre y teléfono son obligatorios para agregar un contacto"}

        normalized = normalize_phone(phone)
        if normalized is None:
            return {"success": False, "error": INVALID_PHONE_MESSAGE}

        contacts = await self._load(user_id)
        if any(_fold(c.name) == _fold(name) or c.phone == normalized for c in contacts):
            return {"success": False, "error": "Ya existe un contacto con ese nombre o teléfono"}

        contact = Contact(
            id=generate_contact_id(),
            name=name.strip(),
            phone=normalized,
            email=(email or "").strip(),
            alias=(alias or "").strip() or name.strip().split(" ")[0],
        )
        contacts.append(contact)
        await self._save(user_id, contacts)
        console.info(f"Contact '{contact.name}' added for user '{user_id}'.")
        return {
            "success": True,
            "message": "Contacto agregado correctamente",
            "contact": {"name": contact.name, "phone": contact.phone, "alias": contact.alias},
        }

    async def _search(self, user_id, query) -> Dict[str, Any]:
        if not query:
            return {"success": False, "error": "Debe proporcionar un término de búsqueda"}

        term = _fold(query)
        results = [
            c for c in await self._load(user_id)
            if term in _fold(c.name) or term in _fold(c.alias) or query.strip() in c.phone or term in _fold(c.email)
        ]
        if not results:
            return {"success": True, "message": f'No se encontraron contactos que coincidan con "{query}"', "contacts": []}
        return {
            "success": True,
            "message": f"Se encontraron {len(results)} contacto(s)",
            "contacts": [self._public(c) for c in results],
        }

    async def _list(self, user_id) -> Dict[str, Any]:
        contacts = await self._load(user_id)
        if not contacts:
            return {"success": True, "message": "No hay contactos en la libreta", "contacts": []}

        ordered = sorted(contacts, key=lambda c: (not c.favorite, _fold(c.name)))
        return {
            "success": True,
            "message": f"{len(contacts)} contactos en total",
            "total_contacts": len(contacts),
            "favorites": sum(1 for c in contacts if c.favorite),
            "contacts": [self._public(c) for c in ordered],
        }

    async def _delete(self, user_id, identifier) -> Dict[str, Any]:
        if not identifier:
            return {"success": False, "error": "Debe proporcionar el nombre o teléfono del contacto a eliminar"}

        contacts = await self._load(user_id)
        term = _fold(identifier)
        phone = normalize_phone(identifier)
        index = next(
            (i for i, c in enumerate(contacts)
             if term in _fold(c.name) or term in _fold(c.alias) or (phone is not None and c.phone == phone)),
            None,
        )
        if index is None:
            return {"success": False, "error": f'No se encontró un contacto que coincida con "{identifier}"'}

        deleted = contacts.pop(index)
        await self._save(user_id, contacts)
        console.info(f"Contact '{deleted.name}' deleted for user '{user_id}'.")
        return {
            "success": True,
            "message": "Contacto eliminado correctamente",
            "deleted_contact": {"name": deleted.name, "phone": deleted.phone},
        }

    async def _update(self, user_id, name, phone, email, alias) -> Dict[str, Any]:
        if not name:
            return {"success": False, "error": "Debe proporcionar el nombre del contacto a actualizar"}

        contacts = await self._load(user_id)
        contact = next((c for c in contacts if _fold(c.name) == _fold(name)), None)
        if contact is None:
            return {"success": False, "error": f'No se encontró un contacto con el nombre "{name}"'}

        if phone:
            normalized = normalize_phone(phone)
            if normalized is None:
                return {"success": False, "error": INVALID_PHONE_MESSAGE}
            contact.phone = normalized
        if email is not None:
            contact.email = email.strip()
        if alias is not None:
            contact.alias = alias.strip()
        contact.updated_at = utcnow()

        await self._save(user_id, contacts)
        return {
            "success": True,
            "message": "Contacto actualizado correctamente",
            "contact": {"name": contact.name, "phone": contact.phone, "alias": contact.alias, "email": contact.email},
        }

    @staticmethod
    def _public(contact: Contact) -> Dict[str, Any]:
        return {
            "id": contact.id,
            "name": contact.name,
            "phone": contact.phone,
            "alias": contact.alias,
            "email": contact.email,
            "favorite": contact.favorite,
        }
