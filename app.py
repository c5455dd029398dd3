"""Entry point for running the renostock API as a Databricks App.

The app runtime imports ``app`` from this file. renostock lives under
``src/`` and is not installed there, so the directory is put on the path
first. Locally, ``python app.py`` serves the same API with uvicorn.
"""

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / "src"))

from renostock.api.main import app  # noqa: E402

if __name__ == "__main__":
    import uvicorn

    # Databricks Apps hands the listening port over in DATABRICKS_APP_PORT
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("DATABRICKS_APP_PORT", "8000")))
