"""
Generation Relay Services

Services behind the relay's HTTP boundary:
- generation: request validation and dispatch
- image_generation: Gemini image client (synchronous)
- video_generation: Sora video job client and poller (asynchronous jobs)
- api: FastAPI application
"""
