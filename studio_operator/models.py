"""
Pydantic models for the ApicurioStudio custom resource.

Desired state (spec) is immutable for the duration of a reconcile pass;
status is mutable and shared between the reconciler and the deployment watch.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Module identities
# ---------------------------------------------------------------------------

class Module(str, Enum):
    """The five modules of a studio instance, valued by their workload label."""
    API = "apicurio-studio-api"
    WS = "apicurio-studio-ws"
    UI = "apicurio-studio-ui"
    IDENTITY = "apicurio-studio-auth"
    DATABASE = "apicurio-studio-db"

    @classmethod
    def from_label(cls, value: Optional[str]) -> Optional["Module"]:
        """Resolve a workload `module` label. Unknown labels resolve to None."""
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def status_field(self) -> str:
        return _STATUS_FIELDS[self]

    @property
    def group(self) -> "ModuleGroup":
        return _GROUPS[self]

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]


class ModuleGroup(str, Enum):
    """Modules that are provisioned together by one reconcile step."""
    IDENTITY = "identity"
    DATABASE = "database"
    STUDIO = "studio"


_STATUS_FIELDS = {
    Module.API: "apiModule",
    Module.WS: "wsModule",
    Module.UI: "uiModule",
    Module.IDENTITY: "keycloakModule",
    Module.DATABASE: "databaseModule",
}

_GROUPS = {
    Module.API: ModuleGroup.STUDIO,
    Module.WS: ModuleGroup.STUDIO,
    Module.UI: ModuleGroup.STUDIO,
    Module.IDENTITY: ModuleGroup.IDENTITY,
    Module.DATABASE: ModuleGroup.DATABASE,
}

_SUFFIXES = {
    Module.API: "api",
    Module.WS: "ws",
    Module.UI: "ui",
    Module.IDENTITY: "auth",
    Module.DATABASE: "db",
}


class State(str, Enum):
    UNKNOWN = "Unknown"
    DEPLOYING = "Deploying"
    READY = "Ready"
    ERROR = "Error"
    # Module level only
    PREEXISTING = "Preexisting"


# ---------------------------------------------------------------------------
# Desired state
# ---------------------------------------------------------------------------

class _SpecModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class IngressSpec(_SpecModel):
    generateCert: bool = True
    secretRef: Optional[str] = None
    annotations: Optional[Dict[str, str]] = None


class ModuleSpec(_SpecModel):
    image: str
    resources: Optional[dict] = None
    ingress: Optional[IngressSpec] = None


DEFAULT_RESOURCES = {
    Module.API: {
        "limits": {"cpu": "1", "memory": "1700Mi"},
        "requests": {"cpu": "100m", "memory": "800Mi"},
    },
    Module.WS: {
        "limits": {"cpu": "1", "memory": "1800Mi"},
        "requests": {"cpu": "100m", "memory": "900Mi"},
    },
    Module.UI: {
        "limits": {"cpu": "1", "memory": "1300Mi"},
        "requests": {"cpu": "100m", "memory": "600Mi"},
    },
}


def _module_default(module: Module, image: str):
    return lambda: ModuleSpec(image=image, resources=DEFAULT_RESOURCES[module])


class KeycloakSpec(_SpecModel):
    install: bool = True
    realm: str = "apicurio"
    url: Optional[str] = None
    volumeSize: str = "500Mi"
    user: Optional[str] = None
    password: Optional[str] = None
    ingress: Optional[IngressSpec] = None


class DatabaseSpec(_SpecModel):
    install: bool = True
    type: str = "postgresql"
    driver: str = "postgresql"
    url: Optional[str] = None
    database: str = "apicuriodb"
    user: Optional[str] = None
    password: Optional[str] = None
    rootPassword: Optional[str] = None
    volumeSize: str = "1Gi"


class MicrocksSpec(_SpecModel):
    apiUrl: Optional[str] = None
    clientId: Optional[str] = None
    clientSecret: Optional[str] = None


class FeaturesSpec(_SpecModel):
    asyncAPI: bool = False
    graphQL: bool = False
    microcks: MicrocksSpec = Field(default_factory=MicrocksSpec)


class StudioSpec(_SpecModel):
    """Desired state of one studio instance."""
    name: str
    url: Optional[str] = None
    apiModule: ModuleSpec = Field(
        default_factory=_module_default(Module.API, "apicurio/apicurio-studio-api:latest"))
    wsModule: ModuleSpec = Field(
        default_factory=_module_default(Module.WS, "apicurio/apicurio-studio-ws:latest"))
    studioModule: ModuleSpec = Field(
        default_factory=_module_default(Module.UI, "apicurio/apicurio-studio-ui:latest"))
    keycloak: KeycloakSpec = Field(default_factory=KeycloakSpec)
    database: DatabaseSpec = Field(default_factory=DatabaseSpec)
    features: FeaturesSpec = Field(default_factory=FeaturesSpec)

    @classmethod
    def from_resource(cls, spec: Mapping, name: str) -> "StudioSpec":
        """Build from a raw CR spec; `name` defaults to the resource name."""
        data = dict(spec or {})
        if not data.get("name"):
            data["name"] = name
        return cls.model_validate(data)

    def module_spec(self, module: Module) -> ModuleSpec:
        return {
            Module.API: self.apiModule,
            Module.WS: self.wsModule,
            Module.UI: self.studioModule,
        }[module]


# ---------------------------------------------------------------------------
# Observed state
# ---------------------------------------------------------------------------

class ModuleStatus(BaseModel):
    state: State = State.UNKNOWN
    error: bool = False
    message: Optional[str] = None
    lastTransitionTime: Optional[str] = None

    def transition(self, state: State, error: bool = False, message: Optional[str] = None) -> bool:
        """
        Move to a new state. Returns True if anything changed.

        The transition time is only stamped on an actual change, and a
        Preexisting module never leaves that state.
        """
        if self.state == State.PREEXISTING:
            return False
        if (self.state, self.error, self.message) == (state, error, message):
            return False
        self.state = state
        self.error = error
        self.message = message
        self.lastTransitionTime = _now()
        return True

    def is_ready(self) -> bool:
        return self.state == State.READY

    def is_settled(self) -> bool:
        """Ready, or provided outside of this operator."""
        return self.state in (State.READY, State.PREEXISTING)


READY_MESSAGE = "All module deployments are ready"
DEPLOYING_MESSAGE = "Currently reconciling..."


def ready_message(ready_replicas: int) -> str:
    return f"{ready_replicas} ready replica(s)"


def evaluate_global(states: Mapping[Module, State]) -> State:
    """
    Global state as a pure function of the five module states.

    Ready iff API, WS and UI are Ready and Identity and Database are each
    Ready or Preexisting; Deploying otherwise.
    """
    settled = (State.READY, State.PREEXISTING)
    if (states.get(Module.API) == State.READY
            and states.get(Module.WS) == State.READY
            and states.get(Module.UI) == State.READY
            and states.get(Module.IDENTITY) in settled
            and states.get(Module.DATABASE) in settled):
        return State.READY
    return State.DEPLOYING


class StudioStatus(BaseModel):
    model_config = ConfigDict(extra="ignore")

    state: State = State.UNKNOWN
    error: bool = False
    message: Optional[str] = None
    studioUrl: Optional[str] = None
    apiUrl: Optional[str] = None
    wsUrl: Optional[str] = None
    keycloakUrl: Optional[str] = None
    apiModule: ModuleStatus = Field(default_factory=ModuleStatus)
    wsModule: ModuleStatus = Field(default_factory=ModuleStatus)
    uiModule: ModuleStatus = Field(default_factory=ModuleStatus)
    keycloakModule: ModuleStatus = Field(default_factory=ModuleStatus)
    databaseModule: ModuleStatus = Field(default_factory=ModuleStatus)

    @classmethod
    def from_resource(cls, status: Optional[Mapping]) -> "StudioStatus":
        """Parse a raw CR status. A missing status yields a fresh Unknown one."""
        if not status:
            return cls()
        return cls.model_validate(dict(status))

    def to_resource(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

    def module(self, module: Module) -> ModuleStatus:
        return getattr(self, module.status_field)

    def module_states(self) -> Dict[Module, State]:
        return {m: self.module(m).state for m in Module}

    def is_ready(self) -> bool:
        return self.state == State.READY

    def reevaluate(self) -> bool:
        """Recompute the global state from module states. Returns True if it changed."""
        new_state = evaluate_global(self.module_states())
        if new_state == self.state:
            return False
        self.state = new_state
        self.error = False
        self.message = READY_MESSAGE if new_state == State.READY else DEPLOYING_MESSAGE
        return True
