"""Example showing a document-to-feature workflow across two applications."""

import asyncio
import logging
import sys

from crossflow import (
    InMemorySessionProvider,
    StepFailed,
    Workflow,
    WorkflowRunner,
    load_config,
)


class DocumentToFeature(Workflow):
    def define_steps(self):
        @self.step("Upload document", "webapp", store_as="document")
        async def upload(ctx):
            return {"id": "doc-1", "filename": "requirements.md"}

        @self.step("Verify indexing", "admin", recoverable=True)
        async def verify(ctx):
            if not ctx.data.get("document"):
                raise StepFailed("no document uploaded", recoverable=False)
            return {"indexed": True}

        @self.step("Generate features", "webapp", store_as="features")
        def generate(ctx):
            return [f"{ctx.data['document']['id']}-feature-{n}" for n in range(3)]


async def main():
    config = load_config(sys.argv[1] if len(sys.argv) > 1 else None)
    logging.basicConfig(level=config.log_level.upper())

    workflow = DocumentToFeature(
        "Document to feature",
        config=config,
        sessions=InMemorySessionProvider(screenshot_dir="test-results/screenshots"),
    )
    runner = WorkflowRunner(config)
    try:
        outcome = await runner.run(workflow, report=True)
    finally:
        await runner.close()
    print(outcome.report)


if __name__ == "__main__":
    asyncio.run(main())
