"""Typed shapes for Salesforce REST payloads.

Salesforce names JSON keys in camelCase (and sometimes PascalCase, e.g.
``Id``). Each field declares its wire key with ``Field(alias=...)``;
``populate_by_name`` keeps the Python names usable in constructors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import DecodeError

M = TypeVar("M", bound="Model")


class Model(BaseModel):
    """Base for every wire model: alias-aware, ignores unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def null_means_default(cls, data: Any) -> Any:
        # Salesforce sends explicit nulls (e.g. "fields": null); optional
        # fields fall back to their default, required ones still fail.
        if not isinstance(data, dict):
            return data
        optional = set()
        for name, info in cls.model_fields.items():
            if not info.is_required():
                optional.add(name)
                if info.alias:
                    optional.add(info.alias)
        return {k: v for k, v in data.items() if not (v is None and k in optional)}

    @classmethod
    def from_json(cls: Type[M], data: Any) -> M:
        """Validate a decoded JSON value; shape mismatches raise ``DecodeError``."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise DecodeError(f"{cls.__name__}: {e}") from e

    def to_json(self) -> Dict[str, Any]:
        """Dump with the platform key names."""
        return self.model_dump(by_alias=True)


# ----------------------------------------------------------------------
# Session and token endpoint
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class Session:
    """Authenticated session; replaced wholesale by every login or refresh."""

    access_token: str
    instance_url: str
    api_version: str
    token_type: str = "Bearer"
    issued_at: Optional[str] = None

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"

    @property
    def base_path(self) -> str:
        return f"{self.instance_url}/services/data/{self.api_version}"

    def __repr__(self) -> str:
        # never leak the token into logs or tracebacks
        return (
            f"Session(instance_url={self.instance_url!r}, api_version={self.api_version!r}, "
            f"token_type={self.token_type!r})"
        )


class TokenResponse(Model):
    access_token: str
    instance_url: str
    id: Optional[str] = None
    issued_at: Optional[str] = None
    signature: Optional[str] = None
    token_type: Optional[str] = None


class TokenErrorResponse(Model):
    error: str
    error_description: str = ""


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------
class ErrorDetail(Model):
    """One element of the top-level error array Salesforce returns."""

    message: Any
    error_code: str = Field(alias="errorCode")
    fields: List[str] = Field(default_factory=list)


class RecordError(Model):
    """Per-record error inside a save or composite result."""

    message: str = ""
    status_code: str = Field(alias="statusCode")
    fields: List[str] = Field(default_factory=list)

    def to_detail(self) -> ErrorDetail:
        return ErrorDetail(message=self.message, error_code=self.status_code, fields=list(self.fields))


# ----------------------------------------------------------------------
# Records and write results
# ----------------------------------------------------------------------
class Attributes(Model):
    sobject_type: str = Field(alias="type")
    url: Optional[str] = None


class SaveResult(Model):
    """Body of a single insert, or of an upsert that created a record."""

    id: str
    success: bool
    errors: List[RecordError] = Field(default_factory=list)
    created: Optional[bool] = None


class CompositeResult(Model):
    """One element of a composite sobjects response, aligned with the request order."""

    success: bool
    id: Optional[str] = None
    errors: List[RecordError] = Field(default_factory=list)
    created: Optional[bool] = None

    @property
    def failed(self) -> bool:
        return not self.success


# ----------------------------------------------------------------------
# Queries and search
# ----------------------------------------------------------------------
class QueryResponse(Model):
    total_size: int = Field(alias="totalSize")
    done: bool
    records: List[Any]
    next_records_url: Optional[str] = Field(default=None, alias="nextRecordsUrl")


class SearchRecord(Model):
    # record fields beyond Id come back as extras
    model_config = ConfigDict(extra="allow")

    id: str = Field(alias="Id")
    attributes: Attributes


class SearchResponse(Model):
    search_records: List[SearchRecord] = Field(alias="searchRecords")


class Version(Model):
    label: str
    url: str
    version: str


# ----------------------------------------------------------------------
# Describe
# ----------------------------------------------------------------------
class DescribeGlobalSObject(Model):
    name: str
    label: str
    label_plural: Optional[str] = Field(default=None, alias="labelPlural")
    key_prefix: Optional[str] = Field(default=None, alias="keyPrefix")
    custom: bool = False
    custom_setting: bool = Field(default=False, alias="customSetting")
    createable: bool = False
    updateable: bool = False
    deletable: bool = False
    queryable: bool = False
    searchable: bool = False
    retrieveable: bool = False
    layoutable: bool = False
    triggerable: bool = False
    undeletable: bool = False
    deprecated_and_hidden: bool = Field(default=False, alias="deprecatedAndHidden")
    urls: Dict[str, str] = Field(default_factory=dict)


class DescribeGlobal(Model):
    sobjects: List[DescribeGlobalSObject]
    encoding: Optional[str] = None
    max_batch_size: Optional[int] = Field(default=None, alias="maxBatchSize")


class FieldDescribe(Model):
    name: str
    label: str
    field_type: str = Field(alias="type")
    length: int = 0
    byte_length: int = Field(default=0, alias="byteLength")
    precision: int = 0
    scale: int = 0
    soap_type: Optional[str] = Field(default=None, alias="soapType")
    custom: bool = False
    nillable: bool = False
    unique: bool = False
    createable: bool = False
    updateable: bool = False
    filterable: bool = False
    sortable: bool = False
    calculated: bool = False
    calculated_formula: Optional[str] = Field(default=None, alias="calculatedFormula")
    external_id: bool = Field(default=False, alias="externalId")
    id_lookup: bool = Field(default=False, alias="idLookup")
    name_field: bool = Field(default=False, alias="nameField")
    default_value_formula: Optional[str] = Field(default=None, alias="defaultValueFormula")
    inline_help_text: Optional[str] = Field(default=None, alias="inlineHelpText")
    reference_to: List[str] = Field(default_factory=list, alias="referenceTo")
    relationship_name: Optional[str] = Field(default=None, alias="relationshipName")
    picklist_values: List[Dict[str, Any]] = Field(default_factory=list, alias="picklistValues")


class ChildRelationship(Model):
    field: str
    child_sobject: Optional[str] = Field(default=None, alias="childSObject")
    relationship_name: Optional[str] = Field(default=None, alias="relationshipName")
    cascade_delete: bool = Field(default=False, alias="cascadeDelete")
    restricted_delete: bool = Field(default=False, alias="restrictedDelete")
    deprecated_and_hidden: bool = Field(default=False, alias="deprecatedAndHidden")


class DescribeSObject(Model):
    name: str
    label: str
    fields: List[FieldDescribe]
    label_plural: Optional[str] = Field(default=None, alias="labelPlural")
    key_prefix: Optional[str] = Field(default=None, alias="keyPrefix")
    custom: bool = False
    custom_setting: bool = Field(default=False, alias="customSetting")
    createable: bool = False
    updateable: bool = False
    deletable: bool = False
    queryable: bool = False
    searchable: bool = False
    retrieveable: bool = False
    undeletable: bool = False
    mergeable: bool = False
    feed_enabled: bool = Field(default=False, alias="feedEnabled")
    child_relationships: List[ChildRelationship] = Field(
        default_factory=list, alias="childRelationships"
    )
    record_type_infos: List[Dict[str, Any]] = Field(default_factory=list, alias="recordTypeInfos")
    urls: Dict[str, str] = Field(default_factory=dict)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


# ----------------------------------------------------------------------
# Streaming (CometD / Bayeux)
# ----------------------------------------------------------------------
class Advice(Model):
    reconnect: Optional[str] = None
    interval: Optional[int] = None
    timeout: Optional[int] = None


class StreamMessage(Model):
    """A Bayeux message as returned by the CometD endpoint."""

    channel: str
    successful: Optional[bool] = None
    error: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")
    advice: Optional[Advice] = None
    subscription: Optional[str] = None
    version: Optional[str] = None
    minimum_version: Optional[str] = Field(default=None, alias="minimumVersion")
    supported_connection_types: List[str] = Field(
        default_factory=list, alias="supportedConnectionTypes"
    )
    data: Any = None
    ext: Any = None
    # Bayeux allows string or numeric message ids
    id: Any = None

    @property
    def is_error(self) -> bool:
        return self.successful is False

    @property
    def is_meta(self) -> bool:
        return self.channel.startswith("/meta/")

    @property
    def is_delivery(self) -> bool:
        return not self.is_meta and self.data is not None

    @property
    def payload(self) -> Any:
        if isinstance(self.data, dict):
            return self.data.get("payload")
        return None

    @property
    def replay_id(self) -> Optional[int]:
        if isinstance(self.data, dict):
            event = self.data.get("event") or {}
            return event.get("replayId")
        return None
