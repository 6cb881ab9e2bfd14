"""Dashboard directory and client-history models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UpstreamModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class Organization(UpstreamModel):
    id: str
    name: str = ""


class Network(UpstreamModel):
    id: str
    name: str = ""
    organization_id: str = Field(default="", alias="organizationId")


class Device(UpstreamModel):
    """A managed device; names and models are descriptive only."""

    serial: str
    name: str | None = None
    model: str | None = None
    product_type: str | None = Field(default=None, alias="productType")
    network_id: str | None = Field(default=None, alias="networkId")

    @property
    def label(self) -> str:
        return self.name or self.serial


class ClientRecord(UpstreamModel):
    """One historical address/port/IP association.

    Records may repeat an address with different timestamps and are not
    ordered by recency.
    """

    mac: str = ""
    ip: str | None = None
    switchport: str | None = None
    switchport_name: str | None = Field(default=None, alias="switchportName")
    port: str | None = None
    last_seen: str | None = Field(default=None, alias="lastSeen")
    recent_device_serial: str | None = Field(default=None, alias="recentDeviceSerial")
    recent_device_name: str | None = Field(default=None, alias="recentDeviceName")
    description: str | None = None
    dhcp_hostname: str | None = Field(default=None, alias="dhcpHostname")
    notes: str | None = None


class SwitchPort(UpstreamModel):
    number: str | None = Field(default=None, alias="portId")
    name: str | None = None
    type: str | None = None  # "access" or "trunk"
    vlan: int | None = None
