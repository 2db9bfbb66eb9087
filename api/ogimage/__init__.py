"""On-demand social preview image service."""
