import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from whmcs_assistant.main import app  # noqa: E402

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")
    uvicorn.run(app, host=host, port=port)
