"""Build and push the CMIS backend and frontend container images."""
import base64
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ImageBuildError(Exception):
    """Raised when a docker command fails."""


@dataclass(frozen=True)
class ImageSpec:
    name: str
    context: str
    dockerfile: str
    port: int


DEFAULT_IMAGES = {
    "backend": ImageSpec("backend", ".", "deployment/docker/backend/Dockerfile", 4000),
    "frontend": ImageSpec("frontend", ".", "deployment/docker/frontend/Dockerfile", 80),
}


class DockerImageBuilder:
    """Drive the docker CLI for image builds, tags and pushes."""

    def __init__(self, project_root: Path, registry: Optional[str] = None,
                 repo_prefix: str = "cmis", tag: str = "latest",
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self.project_root = Path(project_root)
        self.registry = registry
        self.repo_prefix = repo_prefix
        self.tag = tag
        self.runner = runner

    def repository_name(self, spec: ImageSpec) -> str:
        return f"{self.repo_prefix}/{spec.name}"

    def image_uri(self, spec: ImageSpec) -> str:
        repo = self.repository_name(spec)
        if self.registry:
            return f"{self.registry}/{repo}:{self.tag}"
        return f"{repo}:{self.tag}"

    def _run(self, args: List[str], **kwargs) -> None:
        logger.debug(f"Running: {' '.join(args)}")
        try:
            self.runner(args, check=True, **kwargs)
        except subprocess.CalledProcessError as e:
            raise ImageBuildError(f"'{' '.join(args[:2])}' exited with status {e.returncode}") from e
        except FileNotFoundError as e:
            raise ImageBuildError("Docker is not installed. Please install it first.") from e

    def build(self, spec: ImageSpec) -> str:
        """Build one image from the project root. Returns the image URI."""
        dockerfile = self.project_root / spec.dockerfile
        if not dockerfile.is_file():
            raise ImageBuildError(f"Dockerfile not found: {dockerfile}")

        uri = self.image_uri(spec)
        logger.info(f"Building {spec.name} image {uri}")
        self._run(
            ["docker", "build", "-t", uri, "-f", str(dockerfile), spec.context],
            cwd=self.project_root,
        )
        logger.info(f"✅ Built {uri} (exposes port {spec.port})")
        return uri

    def push(self, spec: ImageSpec) -> str:
        if not self.registry:
            raise ImageBuildError("Cannot push without a registry")
        uri = self.image_uri(spec)
        self._run(["docker", "push", uri])
        logger.info(f"Pushed image to ECR: {uri}")
        return uri

    def login(self, ecr_client) -> str:
        """Log docker in to ECR. Returns the registry endpoint."""
        token_data = ecr_client.get_authorization_token()['authorizationData'][0]
        token = base64.b64decode(token_data['authorizationToken']).decode('utf-8')
        username, password = token.split(':', 1)
        endpoint = token_data['proxyEndpoint']

        self._run(
            ["docker", "login", "--username", username, "--password-stdin", endpoint],
            input=password.encode(),
        )
        return endpoint

    def ensure_repository(self, ecr_client, spec: ImageSpec) -> None:
        """Create the ECR repository for an image if it does not exist."""
        name = self.repository_name(spec)
        try:
            ecr_client.create_repository(
                repositoryName=name,
                imageScanningConfiguration={'scanOnPush': True},
                tags=[{'Key': 'Project', 'Value': 'cmis'}]
            )
            logger.info(f"Created ECR repository: {name}")
        except ecr_client.exceptions.RepositoryAlreadyExistsException:
            logger.info(f"ECR repository {name} already exists")

    def build_all(self, specs: List[ImageSpec], push: bool = False,
                  ecr_client=None) -> Dict[str, str]:
        """Build (and optionally push) every image. Returns {name: uri}."""
        if push:
            if ecr_client is None:
                raise ImageBuildError("An ECR client is required to push images")
            self.login(ecr_client)

        uris = {}
        for spec in specs:
            uris[spec.name] = self.build(spec)
            if push:
                self.ensure_repository(ecr_client, spec)
                self.push(spec)
        return uris
