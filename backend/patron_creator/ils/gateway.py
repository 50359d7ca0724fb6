"""Async client for the remote ILS patron API.

``IdentityGateway`` owns the bearer token for the whole process.  Racing
callers that find the token absent or expired share one in-flight refresh;
each of them re-checks the refreshed token before using it, and a failed
refresh is raised to every one of them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from patron_creator import config, constants
from patron_creator.errors import (
    DuplicatePatrons,
    ILSIntegrationError,
    InvalidRequest,
    NotILSValid,
    PatronNotFound,
    ServiceUnavailable,
)
from patron_creator.ils.formatting import format_patron_data
from patron_creator.ils.token import Clock, IdentityToken, TokenState, token_state, utc_now
from patron_creator.models.card import CandidateRecord
from patron_creator.models.patron import Patron

logger = logging.getLogger(__name__)

CREATE_ERROR: str = "The ILS could not be requested when attempting to create a patron."
UPDATE_ERROR: str = "The ILS could not be requested when attempting to update a patron."
FIND_ERROR: str = "The ILS could not be requested when attempting to find a patron."
TOKEN_ERROR: str = "The ILS access token could not be fetched."


def _describe(response: httpx.Response) -> str:
    """Return the ILS's own description of an error response."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        return str(body.get("description") or body.get("name") or body)
    return str(body)


def _patron_link(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("link"):
        return str(body["link"])
    return response.headers.get("Location")


def _is_record_not_found(response: httpx.Response) -> bool:
    try:
        body = response.json()
    except ValueError:
        return False
    if not isinstance(body, dict):
        return False
    text = f"{body.get('name', '')} {body.get('description', '')}".lower()
    return "not found" in text


class IdentityGateway:
    """Find, create and update patrons in the ILS."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        client_key: str,
        client_secret: str,
        token_url: str,
        create_url: str,
        find_url: str,
        clock: Clock = utc_now,
    ) -> None:
        self._client = client
        self._client_key = client_key
        self._client_secret = client_secret
        self._token_url = token_url
        self._create_url = create_url
        self._find_url = find_url
        self._clock = clock

        self._token: IdentityToken | None = None
        self._refresh: asyncio.Future[IdentityToken] | None = None

    @classmethod
    def from_config(cls, client: httpx.AsyncClient) -> IdentityGateway:
        settings = config.get_ils_settings()
        return cls(
            client,
            client_key=settings["ILS_CLIENT_KEY"],
            client_secret=settings["ILS_CLIENT_SECRET"],
            token_url=settings["ILS_CREATE_TOKEN_URL"],
            create_url=settings["ILS_CREATE_PATRON_URL"],
            find_url=settings["ILS_FIND_VALUE_URL"],
        )

    # -- Token lifecycle --

    @property
    def token_state(self) -> TokenState:
        return token_state(self._token, self._clock())

    async def ensure_token(self) -> str:
        """Return a usable bearer token, refreshing it when absent or expired."""
        for _ in range(2):
            token = self._token
            if token is not None and not token.is_expired(self._clock()):
                return token.access_token

            if self._refresh is None:
                self._refresh = asyncio.ensure_future(self._fetch_token())
            refresh = self._refresh
            try:
                token = await asyncio.shield(refresh)
            finally:
                if self._refresh is refresh and refresh.done():
                    self._refresh = None

            if not token.is_expired(self._clock()):
                return token.access_token
        raise ServiceUnavailable(TOKEN_ERROR, debug_message="Fetched token was already expired.")

    def invalidate_token(self, access_token: str | None = None) -> None:
        """Drop the cached token, or only *access_token* if it is still current."""
        if access_token is None or (self._token and self._token.access_token == access_token):
            self._token = None

    async def _fetch_token(self) -> IdentityToken:
        try:
            response = await self._client.post(
                self._token_url,
                auth=(self._client_key, self._client_secret),
                data={"grant_type": "client_credentials"},
            )
        except httpx.HTTPError as exc:
            logger.error("ILS token request failed: %s", exc)
            raise ServiceUnavailable(TOKEN_ERROR, debug_message=str(exc)) from exc

        if response.status_code != 200:
            logger.error("ILS token request returned %s", response.status_code)
            raise ServiceUnavailable(TOKEN_ERROR, debug_message=_describe(response))
        try:
            access_token = response.json()["access_token"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ServiceUnavailable(TOKEN_ERROR, debug_message="No access_token in response.") from exc

        token = IdentityToken(access_token=access_token, issued_at=self._clock())
        self._token = token
        logger.info("Fetched a new ILS access token.")
        return token

    # -- Transport --

    async def _send(self, method: str, url: str, token: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("ILS %s %s timed out", method, url)
            raise ServiceUnavailable("The ILS timed out.", debug_message=str(exc)) from exc
        except httpx.HTTPError as exc:
            logger.error("ILS %s %s failed: %s", method, url, exc)
            raise ServiceUnavailable("The ILS could not be reached.", debug_message=str(exc)) from exc

        if response.status_code == 401:
            self.invalidate_token(token)
        return response

    async def _authorized(
        self,
        method: str,
        url: str,
        *,
        retry_on_expiry: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        token = await self.ensure_token()
        response = await self._send(method, url, token, **kwargs)
        if retry_on_expiry and self._failed_on_expiry(response):
            logger.info("ILS %s %s failed with an expired token; retrying once.", method, url)
            self.invalidate_token(token)
            token = await self.ensure_token()
            response = await self._send(method, url, token, **kwargs)
        return response

    def _failed_on_expiry(self, response: httpx.Response) -> bool:
        if response.status_code == 401:
            return True
        return response.status_code >= 500 and self.token_state is not TokenState.VALID

    # -- Patron operations --

    def _patron_from(self, response: httpx.Response, identifier: str) -> Patron:
        status = response.status_code
        if status == 200:
            return Patron.model_validate(response.json())
        if status == 404 and _is_record_not_found(response):
            raise PatronNotFound(f"No patron found for {identifier}.")
        if status == 409:
            logger.warning("Duplicate ILS patrons share the identifier %s", identifier)
            raise DuplicatePatrons(f"Multiple patrons found for {identifier}.")
        logger.error("ILS lookup for %s returned %s: %s", identifier, status, _describe(response))
        raise ILSIntegrationError(FIND_ERROR, debug_message=_describe(response))

    async def find_patron(self, identifier: str, by_barcode: bool = True) -> Patron:
        """Look up a patron by barcode (``b``) or username (``u``).

        Raises
        ------
        PatronNotFound
            The ILS reported no record for *identifier*.
        DuplicatePatrons
            More than one record carries *identifier*.
        """
        params = {
            "varFieldTag": constants.BARCODE_FIELD_TAG if by_barcode else constants.USERNAME_FIELD_TAG,
            "varFieldContent": identifier,
            "fields": constants.ILS_RESPONSE_FIELDS,
        }
        response = await self._authorized("GET", self._find_url, params=params)
        return self._patron_from(response, identifier)

    async def get_patron(self, patron_id: int) -> Patron:
        response = await self._authorized(
            "GET",
            f"{self._create_url}{patron_id}",
            params={"fields": constants.ILS_RESPONSE_FIELDS},
        )
        return self._patron_from(response, str(patron_id))

    async def available(self, identifier: str, is_barcode: bool = True) -> bool:
        """Return True when no ILS patron holds *identifier*.

        Infrastructure failures raise instead of reporting availability.
        """
        try:
            await self.find_patron(identifier, by_barcode=is_barcode)
        except PatronNotFound:
            return True
        except DuplicatePatrons:
            return False
        return False

    async def create_patron(self, card: CandidateRecord) -> int:
        """Create *card* in the ILS and return the new patron id."""
        if not card.valid_for_ils():
            raise NotILSValid("The card has not been validated or has no ptype.")

        response = await self._authorized(
            "POST", self._create_url, json=format_patron_data(card), retry_on_expiry=True
        )
        status = response.status_code
        if status in (200, 201):
            link = _patron_link(response)
            if not link:
                raise ILSIntegrationError(CREATE_ERROR, debug_message="No patron link in response.")
            patron_id = card.set_patron_id(link)
            logger.info("Created ILS patron %s for barcode %s", patron_id, card.barcode)
            return patron_id
        if status == 400:
            raise InvalidRequest(f"Invalid request to ILS: {_describe(response)}")

        logger.error(
            "ILS patron creation for barcode %s returned %s: %s",
            card.barcode,
            status,
            _describe(response),
        )
        raise ServiceUnavailable(CREATE_ERROR, debug_message=_describe(response))

    async def update_patron(self, patron_id: int, fields: dict[str, Any]) -> None:
        response = await self._authorized("PUT", f"{self._create_url}{patron_id}", json=fields)
        status = response.status_code
        if status == 204:
            return
        if status == 404:
            raise PatronNotFound("Patron record not found")
        if status == 400:
            raise InvalidRequest(f"Invalid request to ILS: {_describe(response)}")
        logger.error("ILS update of patron %s returned %s", patron_id, status)
        raise ILSIntegrationError(UPDATE_ERROR, debug_message=_describe(response))
