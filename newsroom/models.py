"""Pure dataclasses for the newsroom simulation. No logic, no deps."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Persona:
    id: str                # "progressive", "conservative", "tech"
    name: str              # newspaper name, e.g. "The Progressive Tribune"
    tagline: str
    personality: str       # editorial stance
    style: str
    tone: str


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class AgentRunResult:
    agent: str
    headline: str
    story: str
    sources: tuple[str, ...] = ()
    cost: float = 0.0
    refused: bool = False          # no parseable JSON in the final text
    error: bool = False            # the session itself failed
    hit_max_turns: bool = False    # informational, see DESIGN.md


@dataclass(frozen=True)
class DebateResult:
    agent: str
    rebuttal: str
    target: str            # newspaper name being rebutted
    cost: float = 0.0


@dataclass(frozen=True)
class ActivityEvent:
    agent: str
    newspaper: str
    type: str
    message: str
    timestamp: int         # epoch milliseconds
    event_id: str
    details: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Edition:
    persona: Persona
    result: AgentRunResult
    debate: DebateResult | None = None


@dataclass(frozen=True)
class SimulationResult:
    topic: str
    editions: tuple[Edition, ...]
    cost: float
    debate_skipped: bool = False
    duration_sec: float = 0.0
