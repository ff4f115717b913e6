"""Run the API with uvicorn: python -m nutrivision"""

import os

import uvicorn

from nutrivision.app import create_app


def main() -> None:
    uvicorn.run(
        create_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
    )


if __name__ == "__main__":
    main()
