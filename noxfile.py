import nox

nox.needs_version = ">=2024.4.15"
nox.options.default_venv_backend = "uv|virtualenv"


@nox.session
@nox.parametrize("editable", [True, False])
def tests(session: nox.Session, editable: bool) -> None:
    session.install("-e.[test]" if editable else ".[test]")
    session.run("pytest", "--timeout=30", "tests", *session.posargs)


@nox.session
def smoke(session: nox.Session) -> None:
    session.install(".")
    res = session.run(
        "python",
        "-c",
        "import multipart_reader; print(multipart_reader.__version__)",
        silent=True,
    )
    assert res.strip(), "multipart_reader did not report a version"
