"""Build and deployment metadata read from well-known CI/platform variables."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

from .runtime import get_environment_value

_COMMIT_SHA_VARS = (
    "TREEBEARD_COMMIT_SHA",
    "GITHUB_SHA",
    "VERCEL_GIT_COMMIT_SHA",
    "CI_COMMIT_SHA",
    "COMMIT_SHA",
    "GIT_COMMIT",
    "HEROKU_SLUG_COMMIT",
    "RENDER_GIT_COMMIT",
    "RAILWAY_GIT_COMMIT_SHA",
    "CIRCLE_SHA1",
    "TRAVIS_COMMIT",
    "BUILDKITE_COMMIT",
    "BITBUCKET_COMMIT",
    "CODEBUILD_RESOLVED_SOURCE_VERSION",
)

_BRANCH_VARS = (
    "TREEBEARD_BRANCH",
    "GITHUB_REF_NAME",
    "VERCEL_GIT_COMMIT_REF",
    "CI_COMMIT_REF_NAME",
    "GIT_BRANCH",
    "CIRCLE_BRANCH",
    "TRAVIS_BRANCH",
    "BUILDKITE_BRANCH",
)

_BUILD_ID_VARS = (
    "TREEBEARD_BUILD_ID",
    "GITHUB_RUN_ID",
    "VERCEL_BUILD_ID",
    "CI_PIPELINE_ID",
    "BUILD_ID",
    "CIRCLE_BUILD_NUM",
    "BUILDKITE_BUILD_ID",
)

_ENVIRONMENT_VARS = (
    "TREEBEARD_ENVIRONMENT",
    "VERCEL_ENV",
    "CI_ENVIRONMENT_NAME",
    "ENVIRONMENT",
    "ENV",
    "APP_ENV",
)


@dataclass(slots=True)
class EnvironmentInfo:
    commit_sha: Optional[str] = None
    branch: Optional[str] = None
    build_id: Optional[str] = None
    environment: Optional[str] = None

    def to_payload(self) -> Dict[str, str]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _first_set(names: Sequence[str]) -> Optional[str]:
    for name in names:
        value = get_environment_value(name)
        if value:
            return value
    return None


def get_commit_sha() -> Optional[str]:
    return _first_set(_COMMIT_SHA_VARS)


def get_branch() -> Optional[str]:
    return _first_set(_BRANCH_VARS)


def get_build_id() -> Optional[str]:
    return _first_set(_BUILD_ID_VARS)


def get_environment_name() -> Optional[str]:
    return _first_set(_ENVIRONMENT_VARS)


def get_environment_info() -> EnvironmentInfo:
    return EnvironmentInfo(
        commit_sha=get_commit_sha(),
        branch=get_branch(),
        build_id=get_build_id(),
        environment=get_environment_name(),
    )
