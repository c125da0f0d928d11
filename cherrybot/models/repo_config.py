"""Repository propagation target models."""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from .events import Platform


class RepoTarget(BaseModel):
    """Repository that receives branches propagated from another platform."""

    model_config = ConfigDict(frozen=True)

    target_repo: str  # clone URL of the propagation target
    namespace: str
    repo_name: str
    platform: Platform = Platform.GITCODE


class RepoConfig(BaseModel):
    """Mapping from source repository name to its propagation target."""

    model_config = ConfigDict(frozen=True)

    targets: Dict[str, RepoTarget] = {}

    def get_target(self, repo_name: str) -> Optional[RepoTarget]:
        return self.targets.get(repo_name)
