from __future__ import annotations

import types


def test_packages_importable() -> None:
    import mdw
    import mdw.cli
    import mdw.diff
    import mdw.impute
    import mdw.ingest
    import mdw.missing
    import mdw.normalize
    import mdw.pipeline
    import mdw.plots.imputation
    import mdw.plots.missingness

    modules = [
        mdw,
        mdw.cli,
        mdw.diff,
        mdw.impute,
        mdw.ingest,
        mdw.missing,
        mdw.normalize,
        mdw.pipeline,
        mdw.plots.imputation,
        mdw.plots.missingness,
    ]

    # Touch __name__ to silence "unused import" and assert they're modules
    assert all(isinstance(m, types.ModuleType) and isinstance(m.__name__, str) for m in modules)

    # __version__ must exist on the root package
    assert isinstance(mdw.__version__, str)
