"""
Technique and weapon catalogs.

Ideal-pose templates give an acceptable range per metric for each fencing
technique. Metric names match the measurements the comparator knows; names
it cannot observe from 2D keypoints (blade, timing, ...) stay in the
templates for completeness and are skipped during comparison.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class MetricRange:
    min: float
    max: float

    def describe(self, unit: str = "") -> str:
        return f"{self.min:g}-{self.max:g}{unit}"


@dataclass(frozen=True)
class PositionRange:
    """Acceptable 2D position, one range per axis"""
    x: MetricRange
    y: MetricRange

    def describe(self, unit: str = "") -> str:
        return f"x {self.x.describe()}, y {self.y.describe()}"


Range = Union[MetricRange, PositionRange]


@dataclass(frozen=True)
class TechniqueTemplate:
    technique_id: str
    name: str
    description: str
    category: str
    ranges: Mapping[str, Range]

    def to_dict(self) -> dict:
        ranges = {}
        for metric, rng in self.ranges.items():
            if isinstance(rng, PositionRange):
                ranges[metric] = {
                    "x": {"min": rng.x.min, "max": rng.x.max},
                    "y": {"min": rng.y.min, "max": rng.y.max},
                }
            else:
                ranges[metric] = {"min": rng.min, "max": rng.max}
        return {
            "id": self.technique_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "ideal_ranges": ranges,
        }


@dataclass(frozen=True)
class Weapon:
    weapon_id: str
    name: str
    target_area: str

    def to_dict(self) -> dict:
        return {"id": self.weapon_id, "name": self.name, "target_area": self.target_area}


def _template(technique_id: str, name: str, description: str, category: str,
              **ranges: Union[Tuple[float, float], Range]) -> TechniqueTemplate:
    parsed: Dict[str, Range] = {}
    for metric, rng in ranges.items():
        parsed[metric] = MetricRange(*rng) if isinstance(rng, tuple) else rng
    return TechniqueTemplate(technique_id, name, description, category, MappingProxyType(parsed))


def _position(x: Tuple[float, float], y: Tuple[float, float]) -> PositionRange:
    return PositionRange(MetricRange(*x), MetricRange(*y))


_TEMPLATES = [
    # Basic position
    _template(
        "ENGARDE", "En Garde", "Basic fencing ready position", "basic",
        front_knee_angle=(100, 130),
        back_knee_angle=(150, 170),
        torso_angle=(80, 100),
        weapon_arm_angle=(30, 60),
        guard_hand_height=(0.3, 0.5),
        feet_distance=(0.8, 1.2),
        shoulder_hip_alignment=(0.8, 1.2),
    ),

    # Attacks
    _template(
        "LUNGE", "Lunge", "Basic attacking movement", "attack",
        front_knee_angle=(80, 100),
        back_leg_angle=(130, 170),
        torso_angle=(70, 90),
        weapon_arm_extension=(0.8, 1.0),
        back_foot_angle=(45, 90),
        hip_shoulder_alignment=(0.9, 1.1),
    ),
    _template(
        "FLECHE", "Fleche", "Running attack", "attack",
        body_lean=(30, 45),
        arm_extension=(0.9, 1.1),
        back_leg_angle=(160, 180),
        forward_momentum=(0.7, 1.0),
    ),
    _template(
        "DISENGAGE_ATTACK", "Disengage Attack", "Attack avoiding opponent's blade", "attack",
        blade_angle=(30, 60),
        wrist_flexion=(20, 40),
        arm_extension=(0.8, 1.0),
        body_alignment=(0.9, 1.1),
    ),

    # Parries
    _template(
        "PARRY_4", "Parry 4", "Inside high line defense", "parry",
        weapon_arm_angle=(45, 90),
        guard_hand_position=_position((0.5, 0.8), (0.4, 0.7)),
        blade_angle=(30, 60),
        elbow_angle=(90, 120),
    ),
    _template(
        "PARRY_6", "Parry 6", "Outside high line defense", "parry",
        weapon_arm_angle=(90, 135),
        guard_hand_position=_position((0.2, 0.5), (0.4, 0.7)),
        blade_angle=(30, 60),
        elbow_angle=(90, 120),
    ),
    _template(
        "PARRY_8", "Parry 8", "Outside low line defense", "parry",
        weapon_arm_angle=(45, 90),
        guard_hand_position=_position((0.5, 0.8), (0.6, 0.9)),
        blade_angle=(30, 60),
        elbow_angle=(90, 120),
    ),
    _template(
        "CIRCLE_PARRY", "Circular Parry", "Circular defensive movement", "parry",
        wrist_flexion=(20, 45),
        circle_diameter=(0.2, 0.4),
        blade_speed=(0.7, 1.0),
    ),

    # Counter-attacks
    _template(
        "RIPOSTE", "Riposte", "Counter-attack after parry", "counterattack",
        timing=(0, 0.5),
        arm_extension=(0.9, 1.1),
        body_alignment=(0.9, 1.1),
        blade_angle=(20, 40),
    ),
    _template(
        "COUNTER_RIPOSTE", "Counter-Riposte", "Counter-attack after opponent's riposte", "counterattack",
        timing=(0, 0.3),
        distance_control=(0.8, 1.2),
        blade_angle=(30, 60),
        body_alignment=(0.9, 1.1),
    ),

    # Footwork
    _template(
        "ADVANCE", "Advance", "Forward movement", "footwork",
        step_length=(0.3, 0.5),
        knee_bend=(150, 170),
        body_height=(0.9, 1.1),
        balance=(0.8, 1.2),
    ),
    _template(
        "RETREAT", "Retreat", "Backward movement", "footwork",
        step_length=(0.3, 0.5),
        body_posture=(0.9, 1.1),
        weight_distribution=(0.4, 0.6),
        recovery=(0.8, 1.2),
    ),
    _template(
        "BALESTRA", "Balestra", "Jump forward preparation", "footwork",
        jump_height=(0.1, 0.3),
        distance=(0.5, 0.8),
        landing_stability=(0.8, 1.2),
        preparation=(0.7, 1.0),
    ),

    # Advanced techniques
    _template(
        "BEAT_ATTACK", "Beat Attack", "Striking opponent's blade", "advanced",
        beat_strength=(0.5, 1.0),
        timing=(0.1, 0.3),
        blade_contact=(0.8, 1.2),
        follow_through=(0.7, 1.0),
    ),
    _template(
        "BIND", "Bind", "Taking opponent's blade diagonally", "advanced",
        blade_contact=(0.8, 1.2),
        pressure=(0.6, 1.0),
        angle=(30, 60),
        control=(0.8, 1.2),
    ),
    _template(
        "DISENGAGE", "Disengage", "Moving blade around opponent's", "advanced",
        circle_size=(0.1, 0.3),
        timing=(0.1, 0.4),
        wrist_flexion=(20, 45),
        smoothness=(0.7, 1.0),
    ),
    _template(
        "REMISE", "Remise", "Renewed attack", "advanced",
        timing=(0, 0.3),
        distance=(0.9, 1.1),
        blade_angle=(20, 40),
        extension=(0.9, 1.1),
    ),
]

IDEAL_POSES: Mapping[str, TechniqueTemplate] = MappingProxyType(
    {t.technique_id: t for t in _TEMPLATES}
)

WEAPONS: Mapping[str, Weapon] = MappingProxyType({
    "FOIL": Weapon("FOIL", "Foil", "Torso only"),
    "EPEE": Weapon("EPEE", "Épée", "Entire body"),
    "SABRE": Weapon("SABRE", "Sabre", "Waist up"),
})

# Selector labels that are not catalog ids
TECHNIQUE_ALIASES: Mapping[str, str] = MappingProxyType({
    "PARRY": "PARRY_4",
    "FLEECHE": "FLECHE",
    "EN_GARDE": "ENGARDE",
})

WEAPON_ALIASES: Mapping[str, str] = MappingProxyType({
    "ÉPÉE": "EPEE",
    "SABER": "SABRE",
})

DEFAULT_TECHNIQUE = "ENGARDE"
DEFAULT_WEAPON = "FOIL"


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().upper().replace("-", "_").replace(" ", "_")


def resolve_technique(value: Optional[str]) -> Optional[str]:
    """Catalog id for a technique id or alias (case-insensitive), or None"""
    key = _normalize(value)
    key = TECHNIQUE_ALIASES.get(key, key)
    return key if key in IDEAL_POSES else None


def resolve_weapon(value: Optional[str]) -> Optional[str]:
    key = _normalize(value)
    key = WEAPON_ALIASES.get(key, key)
    return key if key in WEAPONS else None


def get_template(technique_id: Optional[str]) -> Optional[TechniqueTemplate]:
    resolved = resolve_technique(technique_id)
    return IDEAL_POSES[resolved] if resolved else None
