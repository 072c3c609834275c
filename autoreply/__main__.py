import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "autoreply.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3000")),
    )


if __name__ == "__main__":
    main()
