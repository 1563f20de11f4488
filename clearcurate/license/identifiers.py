"""
Known SPDX license and exception identifiers.

Lookups are case-insensitive; the canonical casing is the one listed here.
"""

from typing import Dict, Optional

NOASSERTION = "NOASSERTION"
NONE = "NONE"

LICENSE_IDS = (
    "0BSD", "AAL", "AFL-1.1", "AFL-1.2", "AFL-2.0", "AFL-2.1", "AFL-3.0", "AGPL-1.0",
    "AGPL-1.0-only", "AGPL-1.0-or-later", "AGPL-3.0", "AGPL-3.0-only", "AGPL-3.0-or-later",
    "Apache-1.0", "Apache-1.1", "Apache-2.0", "APSL-1.0", "APSL-2.0", "Artistic-1.0",
    "Artistic-1.0-Perl", "Artistic-2.0", "Beerware", "BlueOak-1.0.0", "BSD-1-Clause",
    "BSD-2-Clause", "BSD-2-Clause-Patent", "BSD-3-Clause", "BSD-3-Clause-Clear",
    "BSD-3-Clause-LBNL", "BSD-4-Clause", "BSD-Source-Code", "BSL-1.0", "BUSL-1.1",
    "bzip2-1.0.6", "CC-BY-1.0", "CC-BY-2.0", "CC-BY-2.5", "CC-BY-3.0", "CC-BY-4.0",
    "CC-BY-NC-4.0", "CC-BY-NC-SA-4.0", "CC-BY-ND-4.0", "CC-BY-SA-3.0", "CC-BY-SA-4.0",
    "CC-PDDC", "CC0-1.0", "CDDL-1.0", "CDDL-1.1", "CECILL-2.1", "CPAL-1.0", "CPL-1.0",
    "curl", "ECL-2.0", "EFL-2.0", "EPL-1.0", "EPL-2.0", "EUPL-1.1", "EUPL-1.2", "FSFAP",
    "FTL", "GFDL-1.3", "GFDL-1.3-only", "GFDL-1.3-or-later", "GPL-1.0", "GPL-1.0-only",
    "GPL-1.0-or-later", "GPL-2.0", "GPL-2.0-only", "GPL-2.0-or-later", "GPL-3.0",
    "GPL-3.0-only", "GPL-3.0-or-later", "HPND", "ICU", "IJG", "ImageMagick", "Info-ZIP",
    "IPA", "IPL-1.0", "ISC", "JSON", "LGPL-2.0", "LGPL-2.0-only", "LGPL-2.0-or-later",
    "LGPL-2.1", "LGPL-2.1-only", "LGPL-2.1-or-later", "LGPL-3.0", "LGPL-3.0-only",
    "LGPL-3.0-or-later", "Libpng", "libpng-2.0", "libtiff", "LPL-1.02", "LPPL-1.3c",
    "MirOS", "MIT", "MIT-0", "MIT-CMU", "MIT-feh", "MIT-Modern-Variant", "MPL-1.0", "MPL-1.1",
    "MPL-2.0", "MPL-2.0-no-copyleft-exception", "MS-PL", "MS-RL", "MulanPSL-2.0", "NCSA",
    "Net-SNMP", "NTP", "ODbL-1.0", "OFL-1.0", "OFL-1.1", "OGL-UK-3.0", "OLDAP-2.8",
    "OpenSSL", "OSL-1.0", "OSL-2.0", "OSL-2.1", "OSL-3.0", "PDDL-1.0", "PHP-3.0", "PHP-3.01",
    "PostgreSQL", "PSF-2.0", "Python-2.0", "Python-2.0.1", "QPL-1.0", "Ruby", "SGI-B-2.0",
    "SISSL", "Sleepycat", "SMLNJ", "SSPL-1.0", "TCL", "Unicode-DFS-2015", "Unicode-DFS-2016",
    "Unicode-3.0", "Unlicense", "UPL-1.0", "Vim", "W3C", "W3C-20150513", "WTFPL", "X11",
    "XFree86-1.1", "Xnet", "Zend-2.0", "Zlib", "zlib-acknowledgement", "ZPL-2.0", "ZPL-2.1",
)

EXCEPTION_IDS = (
    "389-exception", "Autoconf-exception-2.0", "Autoconf-exception-3.0", "Bison-exception-2.2",
    "Bootloader-exception", "Classpath-exception-2.0", "CLISP-exception-2.0",
    "FLTK-exception", "Font-exception-2.0", "freertos-exception-2.0", "GCC-exception-2.0",
    "GCC-exception-3.1", "GPL-CC-1.0", "LGPL-3.0-linking-exception", "Libtool-exception",
    "Linux-syscall-note", "LLVM-exception", "OCaml-LGPL-linking-exception",
    "OpenJDK-assembly-exception-1.0", "Qt-GPL-exception-1.0", "Qt-LGPL-exception-1.1",
    "Swift-exception", "u-boot-exception-2.0", "Universal-FOSS-exception-1.0",
    "WxWindows-exception-3.1",
)

LICENSE_NAMES = {
    "apache license 2.0": "Apache-2.0",
    "apache software license": "Apache-2.0",
    "bsd 2-clause \"simplified\" license": "BSD-2-Clause",
    "bsd 3-clause \"new\" or \"revised\" license": "BSD-3-Clause",
    "common public license 1.0": "CPL-1.0",
    "eclipse public license 2.0": "EPL-2.0",
    "gnu general public license v2.0 only": "GPL-2.0-only",
    "gnu general public license v3.0 only": "GPL-3.0-only",
    "gnu lesser general public license v2.1 only": "LGPL-2.1-only",
    "isc license": "ISC",
    "mit license": "MIT",
    "mozilla public license 2.0": "MPL-2.0",
    "the unlicense": "Unlicense",
}

_LOWER_LICENSES: Dict[str, str] = {x.lower(): x for x in LICENSE_IDS}
_LOWER_EXCEPTIONS: Dict[str, str] = {x.lower(): x for x in EXCEPTION_IDS}


def normalize_single(license_id: Optional[str]) -> Optional[str]:
    """Return the canonical casing of a license id, or None when unknown. e.g. mit -> MIT"""
    if not license_id or not license_id.strip():
        return None
    value = license_id.strip()
    upper = value.upper()
    if upper in (NOASSERTION, NONE):
        return upper
    if value.lower().startswith("licenseref-"):
        return "LicenseRef-" + value[len("licenseref-"):]
    return _LOWER_LICENSES.get(value.lower())


def normalize_exception(exception_id: Optional[str]) -> Optional[str]:
    """Return the canonical casing of an exception id, or None when unknown."""
    if not exception_id:
        return None
    return _LOWER_EXCEPTIONS.get(exception_id.strip().lower())


def lookup_by_name(license_name: Optional[str]) -> Optional[str]:
    """Given the full name of a license return its identifier. e.g. Common Public License 1.0 -> CPL-1.0"""
    if not license_name:
        return None
    return LICENSE_NAMES.get(license_name.strip().lower())
