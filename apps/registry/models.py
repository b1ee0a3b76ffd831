from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .identifiers import is_valid_id

Purpose = Literal['SPEND', 'MINT', 'MANAGE', 'STAKE', 'WITHDRAW/PUBLISH/VOTE', 'SPEND/MINT']
ScriptType = Literal['PLUTUS', 'NATIVE', 'TIMELOCK']
PlutusVersion = Literal[1, 2, 3]
Category = Literal[
    'DEFI',
    'MARKETPLACE',
    'COLLECTION',
    'GAMING',
    'COMMUNITY',
    'TOKEN_DISTRIBUTION',
    'STABLECOIN',
    'MOBILE_NETWORK',
    'GENERIC',
    'SMART_WALLET',
    'LAYER_2',
    'BLOCKCHAIN',
    'NFT_MINTING_PLATFORM',
    'UNKNOWN'
]
SubCategory = Literal[
    'AMM_DEX',
    'ORDERBOOK_DEX',
    'HYBRID_DEX',
    'LENDING_BORROWING',
    'NFT',
    'ORACLE',
    'WRAPPED_ASSETS',
    'DEX',
    'CHARITY',
    'STAKING',
    'PERPETUALS',
    'LAUNCHPAD',
    'DEX_AGGREGATOR',
    'MINING',
    'CONCENTRATED_LIQUIDITY_DEX',
    'SYNTHETICS',
    'OPTION',
    'STEALTH_WALLET',
    'UNKNOWN'
]

SCRIPT_HASH_LENGTH = 56
NETWORK_TAG = '71'

_SCRIPT_HASH = re.compile(r'[0-9a-fA-F]{56}')
_FULL_SCRIPT_HASH = re.compile(r'[0-9a-fA-F]{58}')


# Legacy shape: one script name carrying a list of versioned hashes.

class LegacyVersion(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    script_hash: str | None = Field(default=None, alias='scriptHash')
    mint_policy_id: str | None = Field(default=None, alias='mintPolicyID')
    full_script_hash: str | None = Field(default=None, alias='fullScriptHash')

    @property
    def hash(self) -> str | None:
        return self.script_hash or self.mint_policy_id


class LegacyScript(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    name: str | None = None
    purpose: str | None = None
    type: str | None = None
    protocol_version: int | None = Field(default=None, alias='protocolVersion')
    versions: list[LegacyVersion] = Field(default_factory=list)

    @field_validator('versions', mode='before')
    @classmethod
    def _coerce_versions(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []


class LegacyDescription(BaseModel):
    model_config = ConfigDict(extra='ignore')

    short: str | None = None


class LegacyDApp(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    project_name: str | None = Field(default=None, alias='projectName')
    link: str | None = None
    twitter: str | None = None
    category: str | None = None
    sub_category: str | None = Field(default=None, alias='subCategory')
    description: LegacyDescription | None = None
    scripts: list[LegacyScript] = Field(default_factory=list)

    @field_validator('scripts', mode='before')
    @classmethod
    def _coerce_scripts(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []


# Canonical flat shape: one record per script hash.

class Description(BaseModel):
    model_config = ConfigDict(extra='allow')

    short: str = ''


class Script(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    id: str
    name: str
    purpose: Purpose
    type: ScriptType
    script_hash: str = Field(alias='scriptHash')
    full_script_hash: str = Field(alias='fullScriptHash')
    plutus_version: PlutusVersion | None = Field(default=None, alias='plutusVersion')
    protocol_version: int | None = Field(default=None, alias='protocolVersion', ge=2)

    @field_validator('id')
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not is_valid_id(value):
            raise ValueError('id must be 8 base-62 characters')
        return value

    @field_validator('script_hash')
    @classmethod
    def _check_script_hash(cls, value: str) -> str:
        if not _SCRIPT_HASH.fullmatch(value):
            raise ValueError('scriptHash must be 56 hex characters')
        return value

    @field_validator('full_script_hash')
    @classmethod
    def _check_full_script_hash(cls, value: str) -> str:
        if not _FULL_SCRIPT_HASH.fullmatch(value):
            raise ValueError('fullScriptHash must be 58 hex characters')
        return value

    @model_validator(mode='after')
    def _plutus_needs_version(self) -> Script:
        if self.type == 'PLUTUS' and self.plutus_version is None:
            raise ValueError('plutusVersion is required for PLUTUS scripts')
        return self


class DApp(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    id: str
    project_name: str = Field(alias='projectName')
    link: str | None = None
    twitter: str | None = None
    category: Category | None = None
    sub_category: SubCategory | None = Field(default=None, alias='subCategory')
    description: Description | None = None
    scripts: list[Script] = Field(default_factory=list)

    def script_hashes(self) -> set[str]:
        return {script.script_hash.lower() for script in self.scripts}

    def to_document(self) -> dict[str, Any]:
        # Unset fields stay absent so curated documents round-trip unchanged.
        return self.model_dump(by_alias=True, exclude_unset=True)


# Side-table: curated display metadata keyed by canonical project key.

class ScriptMappings(BaseModel):
    model_config = ConfigDict(extra='allow')

    names: dict[str, str] = Field(default_factory=dict)
    purposes: dict[str, Purpose] = Field(default_factory=dict)


class ProjectMetadata(BaseModel):
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    project_name: str = Field(alias='projectName')
    category: Category | None = None
    sub_category: SubCategory | None = Field(default=None, alias='subCategory')
    link: str = ''
    twitter: str = ''
    description: Description = Field(default_factory=Description)
    script_mappings: ScriptMappings = Field(default_factory=ScriptMappings, alias='scriptMappings')


class MetadataTable(BaseModel):
    model_config = ConfigDict(extra='allow')

    mappings: dict[str, ProjectMetadata] = Field(default_factory=dict)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
