"""FastAPI dependencies resolving the services built at startup."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from patron_creator.dependents import DependentAccountEligibility
from patron_creator.provisioning import PatronProvisioner
from patron_creator.services import Services
from patron_creator.validation.address import AddressValidationAdapter
from patron_creator.validation.username import UsernameValidationAdapter


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=503,
            detail="Service is not configured. Run patron-creator init.",
        )
    return services


def get_username_validator(services: Services = Depends(get_services)) -> UsernameValidationAdapter:
    return services.username_validator


def get_address_validator(services: Services = Depends(get_services)) -> AddressValidationAdapter:
    return services.address_validator


def get_dependents(services: Services = Depends(get_services)) -> DependentAccountEligibility:
    return services.dependents


def get_provisioner(services: Services = Depends(get_services)) -> PatronProvisioner:
    return services.provisioner
