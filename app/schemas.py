"""Pydantic schemas shared by the monitor, the gateway and the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceStatus(str, Enum):
    """Health tier derived from the latest reading."""

    normal = "Normal"
    warning = "Warning"
    critical = "Critical"


class ConnectionStatus(str, Enum):
    """Lifecycle of a device's live connection."""

    disconnected = "Disconnected"
    connecting = "Connecting"
    connected = "Connected"
    error = "Error"


class DataSourceMode(str, Enum):
    simulation = "simulation"
    live = "live"


class Reading(BaseModel):
    """One timestamped sample of the three sensor channels."""

    time: datetime
    temperature: float
    pressure: float
    vibration: float


class Device(BaseModel):
    id: str
    name: str
    protocol: str
    connection_params: Dict[str, Any] = Field(default_factory=dict)
    status: DeviceStatus = DeviceStatus.normal
    connection_status: ConnectionStatus = ConnectionStatus.disconnected
    current_data: Reading
    history: List[Reading] = Field(
        default_factory=list, description="Past readings, oldest first."
    )


class DeviceCreate(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    protocol: str = Field(..., min_length=1)
    connection_params: Dict[str, Any] = Field(default_factory=dict)


class DeviceUpdate(BaseModel):
    name: str = Field(..., min_length=1)
    protocol: str = Field(..., min_length=1)
    connection_params: Dict[str, Any] = Field(default_factory=dict)


class NotificationLevel(str, Enum):
    warning = "Warning"
    critical = "Critical"


class Notification(BaseModel):
    id: str
    device_id: str
    device_name: str
    message: str
    timestamp: datetime
    level: NotificationLevel
    is_read: bool = False


class NotificationFeedResponse(BaseModel):
    unread_count: int = Field(..., ge=0)
    notifications: List[Notification] = Field(default_factory=list)


class SimulatedNotificationRequest(BaseModel):
    level: NotificationLevel = NotificationLevel.warning


class ModePayload(BaseModel):
    mode: DataSourceMode


class ChannelStats(BaseModel):
    min: float
    max: float
    mean: float


class HistoryStats(BaseModel):
    temperature: ChannelStats
    pressure: ChannelStats
    vibration: ChannelStats


class HistoryResponse(BaseModel):
    device_id: str
    readings: List[Reading] = Field(default_factory=list)
    stats: Optional[HistoryStats] = None


class AIProvider(str, Enum):
    gemini = "gemini"
    openai = "openai"
    anthropic = "anthropic"
    iotteam = "iotteam"


class ProviderSettings(BaseModel):
    api_key: str = ""
    model: str
    base_url: Optional[str] = Field(
        default=None, description="Endpoint root for OpenAI-compatible providers."
    )


class AISettings(BaseModel):
    provider: AIProvider = AIProvider.gemini
    gemini: ProviderSettings
    openai: ProviderSettings
    anthropic: ProviderSettings
    iotteam: ProviderSettings

    def for_provider(self, provider: Optional[AIProvider] = None) -> ProviderSettings:
        return getattr(self, (provider or self.provider).value)


class ChatRole(str, Enum):
    user = "user"
    model = "model"


class ChatMessage(BaseModel):
    role: ChatRole
    text: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)


class RiskLevel(str, Enum):
    low = "Low"
    medium = "Medium"
    high = "High"


class PredictiveAnalysis(BaseModel):
    """Structured maintenance forecast returned by an AI provider."""

    model_config = ConfigDict(populate_by_name=True)

    risk_level: RiskLevel = Field(..., alias="riskLevel")
    prediction: str
    recommendations: List[str] = Field(default_factory=list)


class ProtocolField(BaseModel):
    name: str
    label: str
    type: str = Field(..., pattern="^(text|number|select)$")
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None


class Protocol(BaseModel):
    name: str
    description: str
    fields: List[ProtocolField] = Field(default_factory=list)


class ProtocolCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
