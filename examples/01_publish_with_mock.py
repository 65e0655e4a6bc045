# RUN: python examples/01_publish_with_mock.py
"""Publish a function through a MockDaemon and print the progress lines.

Demonstrates: BuildRequest, PublishPipeline, InMemoryProgressSink and
the failed outcome returned when the daemon reports an error.
"""

import asyncio
import tempfile
from pathlib import Path

from funcs_builder import BuildRequest, InMemoryProgressSink, MockDaemon, PublishPipeline


async def main() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        func_dir = Path(tmp) / "hello"
        func_dir.mkdir()
        (func_dir / "Dockerfile").write_text("FROM node:16\nCOPY . /home/app\n")
        (func_dir / "index.js").write_text("module.exports = () => 'hello'\n")

        request = BuildRequest(
            base_image="node:16",
            image="registry.example/hello:v1",
            source_path=str(func_dir),
            registry="registry.example",
            username="alice",
            secret="s3cret",
        )

        # 1. Happy path
        daemon = MockDaemon()
        daemon.script_push({"status": "Pushed", "id": "5f70bf18a086"})
        sink = InMemoryProgressSink()
        outcome = await PublishPipeline(daemon).run(request, sink)
        for line in sink.lines:
            print(f"  > {line}")
        print(f"Outcome: {outcome.status} {outcome.image} files={outcome.files}")

        # 2. Build failure: the push is never attempted
        daemon = MockDaemon()
        daemon.script_build({"error": "COPY failed: no source files were specified"})
        outcome = await PublishPipeline(daemon).run(request, InMemoryProgressSink())
        print(f"Outcome: {outcome.status} reason={outcome.reason!r}")
        print(f"Failed stage: {outcome.error.stage}, push calls: {daemon.call_count('push_image')}")


if __name__ == "__main__":
    asyncio.run(main())
