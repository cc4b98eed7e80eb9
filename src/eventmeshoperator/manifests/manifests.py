"""The manifests to apply and delete during one reconcile pass."""

from __future__ import annotations

__all__ = ("ManifestLoadError", "Manifests", "load_manifests")

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from eventmeshoperator import state
from eventmeshoperator.manifests.manifest import (
    Manifest,
    Predicate,
    Transformer,
    by_kind_priority,
    not_,
)
from eventmeshoperator.manifests.transform import TransformError


class ManifestLoadError(RuntimeError):
    """Raised when release manifests cannot be read or parsed."""


@dataclass
class Manifests:
    """Resources to apply, resources to delete and the transformers run on
    both before they are sorted.
    """

    to_apply: Manifest = field(default_factory=Manifest)
    to_delete: Manifest = field(default_factory=Manifest)
    transformers: list[Transformer] = field(default_factory=list)

    def add_to_apply(self, manifest: Manifest) -> None:
        self.to_apply = self.to_apply.append(manifest)

    def add_to_delete(self, manifest: Manifest) -> None:
        self.to_delete = self.to_delete.append(manifest)

    def add_transformers(self, *transformers: Transformer | None) -> None:
        self.transformers.extend(t for t in transformers if t is not None)

    def append(self, manifests: Manifests | None) -> None:
        if manifests is None:
            return
        self.add_to_apply(manifests.to_apply)
        self.add_to_delete(manifests.to_delete)
        self.add_transformers(*manifests.transformers)

    def move_to_delete(self, predicate: Predicate) -> Manifest:
        """Move the resources matching ``predicate`` from the apply set to
        the delete set and return them.
        """
        moved = self.to_apply.filter(predicate)
        self.to_apply = self.to_apply.filter(not_(predicate))
        self.to_delete = self.to_delete.append(moved)
        return moved

    def transform_to_apply(self) -> None:
        try:
            self.to_apply = self.to_apply.transform(*self.transformers)
        except TransformError as exc:
            raise TransformError(
                f"failed to transform manifests to apply: {exc}"
            ) from exc

    def transform_to_delete(self) -> None:
        try:
            self.to_delete = self.to_delete.transform(*self.transformers)
        except TransformError as exc:
            raise TransformError(
                f"failed to transform manifests to delete: {exc}"
            ) from exc

    def sort(self) -> None:
        self.to_apply = self.to_apply.sort(by_kind_priority())
        # Sorted like the apply set; deletion walks it in reverse.
        self.to_delete = self.to_delete.sort(by_kind_priority())


def load_manifests(
    dirname: str, *filenames: str, data_path: str | Path | None = None
) -> Manifest:
    """Load release manifests from ``<data_path>/<dirname>/<filename>``.

    Parameters
    ----------
    dirname : `str`
        The release directory, for example ``eventing-latest``.
    *filenames : `str`
        The YAML files to load, in order.
    data_path : `str` or `pathlib.Path`, optional
        Root of the release manifests. Defaults to
        `eventmeshoperator.state.data_path`.
    """
    root = Path(state.data_path if data_path is None else data_path)
    manifest = Manifest()
    for filename in filenames:
        path = root / dirname / filename
        try:
            manifest = manifest.append(Manifest.from_paths(path))
        except (OSError, yaml.YAMLError) as exc:
            raise ManifestLoadError(
                f"failed to parse manifest {dirname}/{filename}: {exc}"
            ) from exc
    return manifest
