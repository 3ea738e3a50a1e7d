import asyncio

from contentgem_client.contentgem_client import ContentGemClient
from contentgem_client.exceptions import ContentGemError, JobTimeoutError
from contentgem_server import API_PREFIX, ContentGemServer


async def status_changed(status_check):
    print(f"Status changed to: {status_check.status}")


async def main():
    PORT = 8000
    server = ContentGemServer(api_key="cg_demo_key")
    server.queue(
        "POST",
        "/publications/generate",
        {"success": True, "data": {"sessionId": "sess_demo", "status": "generating"}},
    )
    server.queue(
        "GET",
        "/publications/generation-status/sess_demo",
        {"success": True, "data": {"status": "generating"}},
        {"success": True, "data": {"status": "generating"}},
        {"success": True, "data": {"status": "completed", "content": "AI is changing business..."}},
    )
    await server.start(port=PORT)
    print(f"Server started on http://localhost:{PORT}")

    async with ContentGemClient(
        api_key="cg_demo_key", base_url=f"http://localhost:{PORT}{API_PREFIX}"
    ) as client:
        try:
            started = await client.generate_publication("Write about AI in business")
            session_id = started["data"]["sessionId"]
            result = await client.wait_for_generation(
                session_id, max_attempts=10, delay=1.0, on_status_change=status_changed
            )
            print(f"Final status: {result['data']['status']}")
            print(f"Content: {result['data']['content']}")
        except JobTimeoutError as e:
            print(f"Polling timed out: {e}")
        except ContentGemError as e:
            print(f"Error occurred: {e}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
