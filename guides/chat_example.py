"""Simple example sending one chat message, blocking and streaming."""

import asyncio

from difylink import ExecutionContext, execute, load_config


async def main():
    """Basic chat example using DIFY_BASE_URL / DIFY_API_KEY from the environment."""
    config = load_config()

    # Blocking call: one normalized record
    context = ExecutionContext(
        [{"query": "What can you do?", "user": "guide-user"}], config=config
    )
    (record,) = await execute(context, "chat", "send")
    print(f"✅ Answer: {record.data.get('answer')}")
    print(f"💬 Conversation ID: {record.data.get('conversation_id')}")

    # Streaming call: one record per delta plus a final record
    context = ExecutionContext(
        [
            {
                "query": "Tell me a short story.",
                "user": "guide-user",
                "responseMode": "streaming",
                "conversationId": record.data.get("conversation_id", ""),
            }
        ],
        config=config,
    )
    records = await execute(context, "chat", "send")
    print(f"📋 Streamed {len(records) - 1} message events")
    print(records[-1].data["complete_response"])


if __name__ == "__main__":
    asyncio.run(main())
