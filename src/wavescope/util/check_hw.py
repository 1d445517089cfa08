from typing import Callable, Dict, Optional

import pyvisa
from loguru import logger


def list_visa_devices(
    filter_string: Optional[str] = None,
    vendor_filter: Optional[str] = None,
    detailed: bool = True,
    resource_manager: Optional[pyvisa.ResourceManager] = None,
    progress_callback: Optional[Callable[[int, int, str], None]] = None,
) -> Dict[str, Dict[str, str]] | Dict[str, str]:
    """List VISA instruments and identify them with ``*IDN?``.

    Args:
        filter_string: Optional substring a resource name must contain
            (e.g. "TCPIP" or "USB")
        vendor_filter: Optional substring the IDN reply must contain
            (e.g. "Rohde" or "RIGOL")
        detailed: If True, return status dictionaries. If False, just IDN strings
        resource_manager: Optional ResourceManager to use. If None, creates one
        progress_callback: Optional callback(current, total, message)

    Returns:
        If detailed=True:
            Mapping of VISA address to a dict with keys ``idn``, ``vendor``,
            ``model``, ``status`` ('connected' or 'error') and ``error``.
        If detailed=False:
            Mapping of VISA address to IDN string
    """
    owns_rm = False
    if resource_manager is None:
        resource_manager = pyvisa.ResourceManager()
        owns_rm = True

    try:
        devices = {}
        # serial ports never host a scope worth probing
        resources = [
            r
            for r in resource_manager.list_resources()
            if not any(x in r for x in ["/dev/ttyS", "ASRL"])
        ]
        total = len(resources)

        for idx, resource in enumerate(resources):
            if progress_callback:
                progress_callback(idx, total, f"Scanning {resource}")
            if filter_string and filter_string not in resource:
                continue

            inst = None
            try:
                inst = resource_manager.open_resource(resource)
                inst.timeout = 2000
                inst.read_termination = "\n"
                inst.write_termination = "\n"
                idn = inst.query("*IDN?").strip()
                if vendor_filter and vendor_filter not in idn:
                    continue
                fields = [f.strip() for f in idn.split(",")]
                if detailed:
                    devices[resource] = {
                        "idn": idn,
                        "vendor": fields[0] if fields else "",
                        "model": fields[1] if len(fields) > 1 else "",
                        "status": "connected",
                        "error": "",
                    }
                else:
                    devices[resource] = idn
                logger.debug("Found instrument at {}: {}", resource, idn)
            except (pyvisa.errors.VisaIOError, OSError, ValueError) as e:
                if detailed:
                    devices[resource] = {
                        "idn": "",
                        "vendor": "",
                        "model": "",
                        "status": "error",
                        "error": str(e),
                    }
                logger.debug("Error with resource {}: {}", resource, e)
            finally:
                if inst is not None:
                    try:
                        inst.close()
                    except pyvisa.errors.VisaIOError:
                        pass

        if progress_callback:
            progress_callback(total, total, "Done")
        return devices

    finally:
        if owns_rm:
            resource_manager.close()
