"""
Client side of the booking service.

``ApiClient`` wraps the REST endpoints, ``BookingCache`` mirrors the server's
booking list for a UI, and ``AppState`` ties both to one signed-in session.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

# Enforced by the booking form only; the server accepts any count >= 1
MAX_GUESTS_PER_ROOM = 4


class ApiError(Exception):
    """Non-2xx response (or network failure, status_code 0) from the API."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        out[key] = value
    return out


class ApiClient:
    """Thin HTTP client for the booking API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self._owns_http = http is None
        self.http = http or httpx.Client(base_url=base_url or settings.api_url, timeout=timeout)
        self.token = token

    def close(self):
        if self._owns_http:
            self.http.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        logger.debug(f"API call: {method} {path} (token={'yes' if self.token else 'no'})")
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"API exception on {method} {path}: {e}")
            raise ApiError(0, f"Network error: {e}")
        if response.is_error:
            detail = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    detail = body.get("detail")
            except ValueError:
                pass
            logger.warning(f"API error on {method} {path}: {response.status_code} {detail}")
            raise ApiError(response.status_code, detail or "Something went wrong")
        return response.json()

    # Auth
    def admin_login(self, username: str, password: str) -> Dict[str, Any]:
        response = self._request("POST", "/admin/login", json={"username": username, "password": password})
        self.token = response["token"]
        return response

    def admin_setup(self, username: Optional[str] = None, password: Optional[str] = None) -> Dict[str, Any]:
        body = {k: v for k, v in (("username", username), ("password", password)) if v}
        return self._request("POST", "/admin/setup", json=body or None)

    def user_login(self, email: str, password: str) -> Dict[str, Any]:
        response = self._request("POST", "/users/login", json={"email": email, "password": password})
        self.token = response["token"]
        return response

    def user_register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        response = self._request(
            "POST", "/users/register", json={"username": username, "email": email, "password": password}
        )
        self.token = response["token"]
        return response

    def logout(self):
        self.token = None

    # Bookings
    def create_booking(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/bookings", json=_jsonable(data))

    def get_all_bookings(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/bookings")

    def get_my_bookings(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/bookings/mine")

    def get_booking(self, booking_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/bookings/{booking_id}")

    def update_booking_status(self, booking_id: str, status: str) -> Dict[str, Any]:
        return self._request("PUT", f"/bookings/{booking_id}/status", json={"status": status})

    def cancel_booking(self, booking_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/bookings/{booking_id}/cancel")

    def check_availability(self, check_in, check_out, room_type: str) -> Dict[str, Any]:
        params = _jsonable({"checkIn": check_in, "checkOut": check_out, "roomType": room_type})
        return self._request("GET", "/bookings/check-availability", params=params)

    # Users
    def create_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/users", json=data)

    def get_users(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/users")

    def get_user(self, user_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/users/{user_id}")

    def update_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/users/{user_id}", json=data)

    def delete_user(self, user_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/users/{user_id}")


class BookingCache:
    """
    Local mirror of the booking list, newest first.

    Mutations go to the server first and the server's response replaces the
    local record. A failed call leaves the cache untouched and records the
    message in ``error``; the next successful call or ``dismiss_error`` clears it.
    """

    def __init__(self, api: ApiClient):
        self.api = api
        self.bookings: List[Dict[str, Any]] = []
        self.error: Optional[str] = None

    def _fail(self, action: str, e: ApiError) -> None:
        logger.warning(f"Booking {action} failed: {e.message}")
        self.error = e.message

    def _store(self, booking: Dict[str, Any]) -> Dict[str, Any]:
        self.error = None
        for i, existing in enumerate(self.bookings):
            if existing["id"] == booking["id"]:
                self.bookings[i] = booking
                return booking
        self.bookings.insert(0, booking)
        return booking

    def load(self, mine: bool = False) -> bool:
        try:
            bookings = self.api.get_my_bookings() if mine else self.api.get_all_bookings()
        except ApiError as e:
            self._fail("load", e)
            return False
        self.bookings = list(bookings)
        self.error = None
        return True

    def get(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return next((b for b in self.bookings if b["id"] == booking_id), None)

    def search(self, term: str) -> List[Dict[str, Any]]:
        """Case-insensitive match on guest name, email or id."""
        needle = term.strip().lower()
        if not needle:
            return list(self.bookings)
        return [
            b for b in self.bookings
            if needle in b.get("guestName", "").lower()
            or needle in b.get("email", "").lower()
            or needle in b["id"].lower()
        ]

    def by_status(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status is None:
            return list(self.bookings)
        return [b for b in self.bookings if b.get("status") == status]

    def add(self, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        guests = data.get("numberOfGuests")
        if isinstance(guests, int) and guests > MAX_GUESTS_PER_ROOM:
            self.error = f"numberOfGuests: at most {MAX_GUESTS_PER_ROOM} guests per room"
            return None
        try:
            booking = self.api.create_booking(data)
        except ApiError as e:
            self._fail("create", e)
            return None
        return self._store(booking)

    def update_status(self, booking_id: str, status: str) -> Optional[Dict[str, Any]]:
        try:
            booking = self.api.update_booking_status(booking_id, status)
        except ApiError as e:
            self._fail("status update", e)
            return None
        return self._store(booking)

    def cancel(self, booking_id: str) -> Optional[Dict[str, Any]]:
        try:
            booking = self.api.cancel_booking(booking_id)
        except ApiError as e:
            self._fail("cancel", e)
            return None
        return self._store(booking)

    def dismiss_error(self):
        self.error = None

    def clear(self):
        self.bookings = []
        self.error = None


class AppState:
    """Per-session client state: API client, signed-in identity and booking cache.

    Use as a context manager; leaving it signs out and drops cached data.
    Login failures raise ``ApiError``.
    """

    def __init__(self, api: Optional[ApiClient] = None, base_url: Optional[str] = None):
        self.api = api or ApiClient(base_url=base_url)
        self.bookings = BookingCache(self.api)
        self.user: Optional[Dict[str, Any]] = None
        self.is_admin = False

    @property
    def is_authenticated(self) -> bool:
        return self.api.token is not None

    def login_admin(self, username: str, password: str):
        self.api.admin_login(username, password)
        self.user = {"username": username}
        self.is_admin = True
        self.bookings.load()

    def login_user(self, email: str, password: str):
        response = self.api.user_login(email, password)
        self.user = response["user"]
        self.is_admin = False
        self.bookings.load(mine=True)

    def register(self, username: str, email: str, password: str):
        response = self.api.user_register(username, email, password)
        self.user = response["user"]
        self.is_admin = False
        self.bookings.clear()

    def logout(self):
        self.api.logout()
        self.user = None
        self.is_admin = False
        self.bookings.clear()

    def close(self):
        self.logout()
        self.api.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
