"""
Onboarding wizard state machine.

A linear flow of numbered steps. The state is a tiny value object kept in the
Flask session between requests (`to_dict` / `from_dict`).

Rules:
- `max_step_reached` is the furthest step opened; every step before it counts
  as completed, also after going back.
- `go_to_step` only moves within 1..max_step_reached.
- `next_step` advances while not on the last step and resets `can_go_next`.
- `previous_step` goes back while not on the first step.
Out-of-range moves are ignored, not errors.
"""
from __future__ import annotations

from dataclasses import dataclass

SESSION_KEY = "wizard"


@dataclass(frozen=True)
class WizardStepConfig:
    step: int
    title: str
    description: str
    template: str


PROFILE_WIZARD_STEPS: tuple[WizardStepConfig, ...] = (
    WizardStepConfig(1, "Identificação", "Dados pessoais e contato de emergência", "perfil/wizard/step1.html"),
    WizardStepConfig(2, "Endereço", "Endereço residencial", "perfil/wizard/step2.html"),
    WizardStepConfig(3, "Formação", "Cursos, formação acadêmica e experiência", "perfil/wizard/step3.html"),
    WizardStepConfig(4, "Saúde", "Informações de saúde", "perfil/wizard/step4.html"),
)


@dataclass
class WizardState:
    total_steps: int
    current_step: int = 1
    can_go_next: bool = False
    max_step_reached: int = 1

    def __post_init__(self) -> None:
        if self.total_steps < 1:
            raise ValueError("total_steps must be >= 1")
        if not 1 <= self.current_step <= self.total_steps:
            self.current_step = 1
        if self.max_step_reached > self.total_steps:
            self.max_step_reached = self.current_step
        self.max_step_reached = max(self.max_step_reached, self.current_step)

    @property
    def is_first_step(self) -> bool:
        return self.current_step == 1

    @property
    def is_last_step(self) -> bool:
        return self.current_step == self.total_steps

    def is_completed(self, step: int) -> bool:
        return step < self.max_step_reached

    def can_visit(self, step: int) -> bool:
        return 1 <= step <= self.max_step_reached

    def go_to_step(self, step: int) -> bool:
        if not self.can_visit(step):
            return False
        self.current_step = step
        return True

    def next_step(self) -> bool:
        if self.current_step >= self.total_steps:
            return False
        self.current_step += 1
        self.max_step_reached = max(self.max_step_reached, self.current_step)
        self.can_go_next = False
        return True

    def previous_step(self) -> bool:
        if self.current_step <= 1:
            return False
        self.current_step -= 1
        return True

    def to_dict(self) -> dict:
        return {
            "total_steps": self.total_steps,
            "current_step": self.current_step,
            "can_go_next": self.can_go_next,
            "max_step_reached": self.max_step_reached,
        }

    @classmethod
    def from_dict(cls, data: dict | None, *, total_steps: int) -> "WizardState":
        """Rebuild from session data; anything stale or malformed restarts at step 1."""
        data = data or {}
        if data.get("total_steps") != total_steps:
            return cls(total_steps=total_steps)
        try:
            current = int(data.get("current_step") or 1)
        except (TypeError, ValueError):
            current = 1
        try:
            reached = int(data.get("max_step_reached") or current)
        except (TypeError, ValueError):
            reached = current
        return cls(
            total_steps=total_steps,
            current_step=current,
            can_go_next=bool(data.get("can_go_next")),
            max_step_reached=reached,
        )


def step_config(step: int) -> WizardStepConfig:
    for cfg in PROFILE_WIZARD_STEPS:
        if cfg.step == step:
            return cfg
    raise ValueError(f"Etapa inválida: {step}")
