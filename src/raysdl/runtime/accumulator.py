"""
Scene accumulator: the output sink filled by object declarations.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

from .values import Value, to_python
from ..errors import error_duplicate_singleton, error_scene_frozen
from ..tokens import SourceSpan

logger = logging.getLogger(__name__)

# Kinds allowed at most once per program
SINGLETON_KINDS = ("camera", "scene", "skybox")

# Alternative spellings accepted for object kinds
KIND_ALIASES: Dict[str, str] = {
    "box": "aabb",
    "pointlight": "point_light",
    "sun_light": "sun",
    "sunlight": "sun",
    "arealight": "area_light",
}


def canonical_kind(kind: str) -> str:
    """Map an object kind alias to its canonical name."""
    return KIND_ALIASES.get(kind, kind)


@dataclass(frozen=True)
class DeclaredObject:
    """One evaluated object declaration: its kind and resolved fields."""
    kind: str
    fields: Mapping[str, Value]
    span: Optional[SourceSpan] = None

    def to_python(self) -> dict:
        return {"kind": self.kind, "fields": {k: to_python(v) for k, v in self.fields.items()}}


class SceneAccumulator:
    """
    Ordered object declarations plus the camera/scene/skybox slots.

    A fresh accumulator is created for every evaluation. Once evaluation
    finishes the interpreter calls `freeze()`; further declarations fail.
    """

    def __init__(self):
        self.objects: List[DeclaredObject] = []
        self.singletons: Dict[str, DeclaredObject] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "SceneAccumulator":
        self._frozen = True
        return self

    def declare(self, kind: str, fields: Dict[str, Value],
                span: Optional[SourceSpan] = None) -> DeclaredObject:
        """
        Record a declaration under its canonical kind.

        Raises:
            DuplicateSingletonError: camera, scene or skybox declared twice
            EvaluationError: the accumulator is frozen
        """
        if self._frozen:
            raise error_scene_frozen(kind)

        kind = canonical_kind(kind)
        declared = DeclaredObject(kind, MappingProxyType(dict(fields)), span)

        if kind in SINGLETON_KINDS:
            previous = self.singletons.get(kind)
            if previous is not None:
                logger.debug("rejecting second '%s' declaration at %s", kind, span)
                raise error_duplicate_singleton(kind, span, previous.span)
            self.singletons[kind] = declared
        else:
            self.objects.append(declared)

        logger.debug("declared %s with fields %s", kind, ", ".join(fields) or "(none)")
        return declared

    @property
    def camera(self) -> Optional[DeclaredObject]:
        return self.singletons.get("camera")

    @property
    def scene(self) -> Optional[DeclaredObject]:
        return self.singletons.get("scene")

    @property
    def skybox(self) -> Optional[DeclaredObject]:
        return self.singletons.get("skybox")

    def of_kind(self, kind: str) -> List[DeclaredObject]:
        """Declared (non-singleton) objects of one kind, in order."""
        kind = canonical_kind(kind)
        return [obj for obj in self.objects if obj.kind == kind]

    def __iter__(self) -> Iterator[DeclaredObject]:
        return iter(self.objects)

    def __len__(self) -> int:
        return len(self.objects)

    def to_python(self) -> dict:
        """Plain-data snapshot, used for dumps and comparisons."""
        return {
            "singletons": {k: v.to_python() for k, v in sorted(self.singletons.items())},
            "objects": [obj.to_python() for obj in self.objects],
        }
