# AutoBlockIP - Block brute-force logon sources in the host firewall
try:
    from importlib.metadata import version as _version
    __version__ = _version("autoblockip")
except Exception:
    __version__ = "0.3.0"
