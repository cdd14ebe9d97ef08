"""Find source repositories whose pinned commit changed in a helm-charts workspace.

A helm-charts repository pins container images in ``images.yaml`` files::

    containerImages:
      keppel:
        account: ccloud
        repository: keppel
        tag: "20240901"
        sources:
          - repo: https://github.com/sapcc/keppel.git
            commit: 0123abc...

When such a file changes between two refs, every source whose commit moved
becomes a RepoChangeset from the old commit to the new one.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field

import yaml

from pear_reviewer_core.errors import GitError, ParseError
from pear_reviewer_core.models import RepoChangeset
from pear_reviewer_core.remote import parse_remote

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_SUFFIX = "images.yaml"


@dataclass(frozen=True)
class SourceRef:
    repo: str
    commit: str


@dataclass
class ContainerImage:
    account: str
    repository: str
    tag: str
    sources: list[SourceRef] = field(default_factory=list)


def parse_image_refs(data: bytes | str, path: str = "<memory>") -> dict[str, ContainerImage]:
    """Parse the ``containerImages`` section of a manifest."""
    try:
        doc = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise ParseError(f"cannot parse yaml file {path}: {e}") from e

    if not isinstance(doc, dict) or not isinstance(doc.get("containerImages"), dict):
        raise ParseError(f"{path}: expected a containerImages mapping")

    images: dict[str, ContainerImage] = {}
    for name, image in doc["containerImages"].items():
        if not isinstance(image, dict):
            raise ParseError(f"{path}: containerImages.{name} is not a mapping")
        try:
            images[str(name)] = ContainerImage(
                account=str(image["account"]),
                repository=str(image["repository"]),
                tag=str(image["tag"]),
                sources=[SourceRef(repo=str(s["repo"]), commit=str(s["commit"])) for s in image.get("sources") or []],
            )
        except (KeyError, TypeError) as e:
            raise ParseError(f"{path}: containerImages.{name} is missing {e}") from e
    return images


def _git(workspace: str, *args: str) -> bytes:
    cmd = ["git", "-C", workspace, *args]
    try:
        result = subprocess.run(cmd, capture_output=True, check=False)
    except FileNotFoundError as e:
        raise GitError("git is not installed") from e
    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise GitError(f"`{' '.join(cmd)}` failed: {stderr}")
    return result.stdout


def changed_manifests(workspace: str, base: str, head: str, suffix: str = DEFAULT_MANIFEST_SUFFIX) -> list[str]:
    """Return paths ending in ``suffix`` that exist at both refs and differ between them."""
    out = _git(workspace, "diff", "--name-only", "--no-renames", "--diff-filter=M", "-z", base, head)
    paths = [os.fsdecode(p) for p in out.split(b"\0") if p]
    return [p for p in paths if p.endswith(suffix)]


def read_file_at(workspace: str, ref: str, path: str) -> bytes:
    return _git(workspace, "show", f"{ref}:{path}")


def _base_source(old_image: ContainerImage, source: SourceRef) -> SourceRef | None:
    for old in old_image.sources:
        if old.repo == source.repo:
            return old
    return old_image.sources[0] if old_image.sources else None


def find_repo_changesets(
    workspace: str, base: str, head: str, suffix: str = DEFAULT_MANIFEST_SUFFIX
) -> list[RepoChangeset]:
    """Build one RepoChangeset per image source whose commit moved between base and head."""
    changes: list[RepoChangeset] = []

    for path in changed_manifests(workspace, base, head, suffix):
        old_images = parse_image_refs(read_file_at(workspace, base, path), path)
        new_images = parse_image_refs(read_file_at(workspace, head, path), path)

        for name, image in new_images.items():
            old_image = old_images.get(name)
            if old_image is None:
                logger.info("%s: image %s is new, nothing to compare against", path, name)
                continue

            for source in image.sources:
                old_source = _base_source(old_image, source)
                if old_source is None:
                    logger.info("%s: image %s had no sources at %s", path, name, base)
                    continue
                if old_source.commit == source.commit:
                    continue

                changes.append(
                    RepoChangeset(
                        display_name=name,
                        remote=parse_remote(source.repo),
                        base_commit=old_source.commit,
                        head_commit=source.commit,
                    )
                )

    return changes
