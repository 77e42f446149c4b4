"""Example running a workflow in blocking mode through the client facade."""

import asyncio

from difylink import Credentials, DifyClient, build_request, load_config


async def main():
    """Start a workflow run and poll it until it finishes."""
    config = load_config()
    client = DifyClient(
        Credentials(base_url=config.credentials.base_url, api_key=config.credentials.api_key),
        config=config,
    )

    started = await client.request_with_retry(
        lambda: build_request(
            "POST",
            "/workflows/run",
            body={"inputs": {"topic": "tea"}, "response_mode": "blocking", "user": "guide-user"},
            timeout=config.timeouts.workflow,
        )
    )
    run_id = started["workflow_run_id"]
    print(f"🚀 Workflow run started: {run_id}")

    state = await client.poller(interval=1.0).poll(run_id)
    print(f"✅ Finished with status {state.status.value} after {state.polls} polls")
    print(f"📦 Outputs: {state.outputs}")


if __name__ == "__main__":
    asyncio.run(main())
