# RUN: python examples/02_stream_progress.py
"""Stream progress lines the way a streaming RPC handler would.

Demonstrates: Publisher.stream(), which yields each line as it is written
and raises the BuildError of a failed request once the run ends.
"""

import asyncio

from funcs_builder import BuildError, BuilderConfig, BuildRequest, MockDaemon, Publisher


async def main() -> None:
    daemon = MockDaemon()
    daemon.script_push(
        {"status": "The push refers to repository [registry.example/fn]"},
        {"status": "Pushing", "id": "a1b2", "progress": "[=====>    ] 5MB/10MB"},
        {"status": "Pushed", "id": "a1b2"},
    )
    request = BuildRequest(image="registry.example/fn:v1", registry="registry.example")

    async with Publisher(config=BuilderConfig(), daemon=daemon) as publisher:
        async for line in publisher.stream(request):
            print(f"stream.write({line!r})")

        daemon.script_push({"error": "denied: requested access to the resource is denied"})
        try:
            async for line in publisher.stream(request):
                print(f"stream.write({line!r})")
        except BuildError as exc:
            print(f"stream.error({exc}) [stage={exc.stage}]")


if __name__ == "__main__":
    asyncio.run(main())
