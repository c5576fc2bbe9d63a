"""HTTP surface: response envelope and routers."""
