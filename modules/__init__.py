"""Camera directory and HLS helpers.

Avoid importing heavy dependencies here; consumers should import submodules directly."""

__all__: list[str] = []
