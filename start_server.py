"""
Start the transcriber orchestrator for local testing
"""
import sys

import uvicorn

from transcriber.core.config import settings

if __name__ == "__main__":
    print("Starting Transcriber Orchestrator...")
    print(f"Python: {sys.version}")
    print(f"Provider: {settings.transcription_provider}")

    try:
        uvicorn.run(
            "transcriber.main:app",
            host="127.0.0.1",
            port=8000,
            reload=settings.debug,
            log_level=settings.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\nServer stopped by user")
