"""Data models for geoping.

Wire contracts (TimingRecord, CheckResult, CheckSession) use the camelCase
field names of the probing service. Region membership is checked against the
``regions`` entry of the validation context so the supported set stays
configuration.
"""
from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import (
    AllowInfNan,
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

# NaN and Infinity would be written to the cache as null and never read back
Number = Union[StrictInt, Annotated[StrictFloat, AllowInfNan(False)]]


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    HEAD = "HEAD"


class TimingRecord(BaseModel):
    """Start/done epoch-millisecond timestamps of the five request phases."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    dns_start: Number = Field(alias="dnsStart")
    dns_done: Number = Field(alias="dnsDone")
    connect_start: Number = Field(alias="connectStart")
    connect_done: Number = Field(alias="connectDone")
    tls_handshake_start: Number = Field(alias="tlsHandshakeStart")
    tls_handshake_done: Number = Field(alias="tlsHandshakeDone")
    first_byte_start: Number = Field(alias="firstByteStart")
    first_byte_done: Number = Field(alias="firstByteDone")
    transfer_start: Number = Field(alias="transferStart")
    transfer_done: Number = Field(alias="transferDone")

    def phase_bounds(self) -> Dict[str, Tuple[float, float]]:
        """(start, done) per phase, in request order."""
        return {
            "dns": (self.dns_start, self.dns_done),
            "connection": (self.connect_start, self.connect_done),
            "tls": (self.tls_handshake_start, self.tls_handshake_done),
            "ttfb": (self.first_byte_start, self.first_byte_done),
            "transfer": (self.transfer_start, self.transfer_done),
        }

    @model_validator(mode="after")
    def check_phases(self):
        for phase, (start, done) in self.phase_bounds().items():
            if done < start:
                raise ValueError(f"{phase} phase ends before it starts ({done} < {start})")
        return self


def _check_region(value: str, info: ValidationInfo) -> str:
    if not value:
        raise ValueError("region must not be empty")
    regions = (info.context or {}).get("regions")
    if regions is not None and value not in regions:
        raise ValueError(f"unsupported region {value!r}, expected one of {list(regions)}")
    return value


class CheckResult(BaseModel):
    """One probe's raw result as returned by the probing service."""

    model_config = ConfigDict(frozen=True)

    status: StrictInt
    latency: Number
    headers: Dict[str, str]
    time: Number
    timing: TimingRecord
    body: Optional[str] = None


class RegionCheck(CheckResult):
    region: str

    validate_region = field_validator("region")(_check_region)


class RegionFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    region: str
    error: str
    detail: str

    validate_region = field_validator("region")(_check_region)

    @classmethod
    def from_exception(cls, region: str, exc: Exception) -> "RegionFailure":
        return cls(
            region=region,
            error=getattr(exc, "error_code", type(exc).__name__),
            detail=getattr(exc, "message", None) or str(exc) or type(exc).__name__,
        )


class RegionOutcome(BaseModel):
    """Settled result of one region's probe: either a check or a failure."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    region: str
    check: Optional[RegionCheck] = None
    failure: Optional[RegionFailure] = None
    error: Optional[Exception] = Field(default=None, exclude=True)

    @property
    def ok(self) -> bool:
        return self.check is not None


class CheckSession(BaseModel):
    """Aggregated result of one fan-out, cached under a session id."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(min_length=1)
    time: Number
    method: Method = Method.GET
    checks: List[RegionCheck]
    failures: List[RegionFailure] = Field(default_factory=list)


class HeaderEntry(BaseModel):
    key: str = ""
    value: str = ""


class ProbeOptions(BaseModel):
    method: Method = Method.GET
    headers: List[HeaderEntry] = Field(default_factory=list)
    body: Optional[str] = None

    def header_map(self) -> Dict[str, str]:
        # an empty key is not a valid header name
        return {entry.key: entry.value for entry in self.headers if entry.key}


class CheckRequest(ProbeOptions):
    url: str = Field(min_length=1)

    @field_validator("url")
    @classmethod
    def strip_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("url must not be blank")
        return value

    def options(self) -> ProbeOptions:
        return ProbeOptions(method=self.method, headers=self.headers, body=self.body)


class SessionCreated(BaseModel):
    id: str
    url: str
    method: Method
    regions: List[str]


class TokenRequest(BaseModel):
    client_id: str
    project_id: Optional[str] = None


class TokenPayload(BaseModel):
    """API token payload model."""
    client_id: str
    project_id: str


class ParseResult(BaseModel):
    """Outcome of validating an untrusted payload against a contract."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


def parse_check_result(payload: Any) -> ParseResult:
    """Validate a probing service response without raising."""
    try:
        data = CheckResult.model_validate(payload)
    except ValidationError as e:
        return ParseResult(success=False, error=str(e))
    return ParseResult(success=True, data=data)


def parse_session(payload: Any, regions: Optional[Iterable[str]] = None) -> ParseResult:
    """Validate a session, given as a mapping or its JSON text, without raising."""
    context = {"regions": list(regions)} if regions is not None else None
    try:
        if isinstance(payload, (str, bytes, bytearray)):
            data = CheckSession.model_validate_json(payload, context=context)
        else:
            data = CheckSession.model_validate(payload, context=context)
    except ValidationError as e:
        return ParseResult(success=False, error=str(e))
    return ParseResult(success=True, data=data)
