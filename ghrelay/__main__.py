import uvicorn

from ghrelay.vars import HOST, PORT


def main() -> None:
    uvicorn.run("ghrelay.server:app", host=HOST, port=PORT, proxy_headers=True)


if __name__ == "__main__":
    main()
