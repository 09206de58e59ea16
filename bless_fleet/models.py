"""
Pydantic Models for the Bless gateway
Mirrors the JSON payloads served by gateway-run.bls.dev/api/v1
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional, List


class NodeSession(BaseModel):
    """Session record nested in a node listing"""
    id: Optional[str] = Field(default=None, alias="_id")
    pub_key: Optional[str] = Field(default=None, alias="nodeId")
    start_at: Optional[str] = Field(default=None, alias="startAt")
    pings: List[Any] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Node(BaseModel):
    """A node registered to an account"""
    pub_key: str = Field(alias="pubKey")
    hardware_id: str = Field(alias="hardwareId")
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    id: Optional[str] = Field(default=None, alias="_id")
    user_id: Optional[str] = Field(default=None, alias="userId")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")
    hardware_info: Optional[Any] = Field(default=None, alias="hardwareInfo")
    sessions: List[NodeSession] = Field(default_factory=list)
    total_reward: float = Field(default=0, alias="totalReward")
    today_reward: float = Field(default=0, alias="todayReward")
    is_connected: bool = Field(default=False, alias="isConnected")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class ApiResponse(BaseModel):
    """Generic gateway acknowledgement"""
    status: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def connected(self) -> bool:
        """Whether the gateway reported the node as live"""
        return (self.status or "").lower() == "ok"


class IpResponse(BaseModel):
    """Externally visible address reported by the lookup service"""
    ip: str


class AccountConfig(BaseModel):
    """One entry of the account file"""
    token: str
    proxy: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("token")
    @classmethod
    def _token_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("token must not be empty")
        return value

    @field_validator("proxy")
    @classmethod
    def _blank_proxy_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None
