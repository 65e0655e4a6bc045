# RUN: python examples/03_docker_publish.py ./my-func registry.example/my-func:v1
"""Build and push a real image through the local Docker daemon.

Requires a running Docker engine.  Credentials come from the
REGISTRY_USERNAME / REGISTRY_SECRET environment variables.
"""

import asyncio
import os
import sys

from funcs_builder import BuildRequest, BuilderConfig, Publisher


async def main(source_path: str, image: str) -> int:
    config = BuilderConfig.from_env()
    request = BuildRequest(
        image=image,
        source_path=source_path,
        registry=image.split("/", 1)[0],
        username=os.environ.get("REGISTRY_USERNAME"),
        secret=os.environ.get("REGISTRY_SECRET"),
    )
    async with await Publisher.connect(setup_logging=True, **config.model_dump()) as publisher:
        outcome = await publisher.publish(request)
    print(f"{outcome.status}: {outcome.image}")
    return 0 if outcome.published else 1


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2])))
