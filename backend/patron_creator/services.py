"""Construction of the long-lived service objects the routes use."""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict

from patron_creator import config
from patron_creator.allocator import BarcodeAllocator
from patron_creator.dependents import DependentAccountEligibility
from patron_creator.errors import SOIntegrationError
from patron_creator.ils.gateway import IdentityGateway
from patron_creator.provisioning import PatronProvisioner
from patron_creator.storage.barcodes import BarcodeStore
from patron_creator.validation.address import AddressValidationAdapter, ServiceObjectsClient
from patron_creator.validation.card import CardValidationPipeline
from patron_creator.validation.username import UsernameValidationAdapter

logger = logging.getLogger(__name__)


class Services(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    http_client: httpx.AsyncClient
    gateway: IdentityGateway
    address_validator: AddressValidationAdapter
    username_validator: UsernameValidationAdapter
    store: BarcodeStore
    allocator: BarcodeAllocator
    dependents: DependentAccountEligibility
    provisioner: PatronProvisioner

    async def aclose(self) -> None:
        await self.http_client.aclose()
        self.store.engine.dispose()


def build_services(
    http_client: httpx.AsyncClient | None = None,
    store: BarcodeStore | None = None,
) -> Services:
    """Wire every service from configuration.

    Raises
    ------
    ConfigurationError
        If ILS credentials or endpoints are missing.
    SOIntegrationError
        If no Service Objects license key is configured.
    """
    config.get_ils_settings()
    if not config.get_so_license_key():
        raise SOIntegrationError("No credentials for Service Objects were passed.")

    client = http_client or httpx.AsyncClient(timeout=config.get_http_timeout())
    gateway = IdentityGateway.from_config(client)
    address_validator = AddressValidationAdapter(ServiceObjectsClient.from_config(client))
    username_validator = UsernameValidationAdapter(gateway)
    store = store or BarcodeStore.from_config()
    allocator = BarcodeAllocator(store, gateway, prefix=config.get_barcode_prefix())
    dependents = DependentAccountEligibility(gateway)
    pipeline = CardValidationPipeline(username_validator, address_validator)
    provisioner = PatronProvisioner(pipeline, allocator, gateway, dependents)
    logger.info("Services built; barcode prefix %s", allocator.prefix)
    return Services(
        http_client=client,
        gateway=gateway,
        address_validator=address_validator,
        username_validator=username_validator,
        store=store,
        allocator=allocator,
        dependents=dependents,
        provisioner=provisioner,
    )
