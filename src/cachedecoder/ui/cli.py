import argparse

from cachedecoder.utils.core import cmd_decode, cmd_list
from cachedecoder.utils.dataModels import DEFAULT_OUTPUT_TEMPLATE
from cachedecoder.utils.maintain import cmd_encode

OUTPUT_HELP = (
    "Output directory template. Replacements: %%d = last modified day, %%m = last modified month, "
    "%%y = last modified year, %%s = server (e.g. 127.0.0.1_30120), %%h = resource hash, %%n = resource name"
)
WORKDIR_HELP = "Where to store the decrypted database. Default is the current working directory."


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Decrypt, extract and re-encrypt cached game resources")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_dec = sub.add_parser("decode", help="Decrypt the resources and extract the rpfs")
    p_dec.add_argument("-c", "--cachedir", required=True, help="The cache priv directory")
    p_dec.add_argument("-o", "--output", default=DEFAULT_OUTPUT_TEMPLATE, help=OUTPUT_HELP)
    p_dec.add_argument("-w", "--workdir", help=WORKDIR_HELP)
    p_dec.add_argument("-d", "--duplicates", action="store_true",
                       help="Decode every version of a resource, not only the latest. "
                            "Combine with the date or hash replacements, e.g. -o \"dump/%%m-%%d/%%n\"")
    p_dec.set_defaults(func=cmd_decode)

    p_enc = sub.add_parser("encode", help="Pack and encrypt edited resources back into the cache")
    p_enc.add_argument("-c", "--cachedir", required=True, help="The cache priv directory")
    p_enc.add_argument("-o", "--output", default=DEFAULT_OUTPUT_TEMPLATE, help=OUTPUT_HELP)
    p_enc.add_argument("-w", "--workdir", help=WORKDIR_HELP)
    p_enc.add_argument("-d", "--dry", action="store_true", help="Do a dry run without modifying the cache")
    p_enc.set_defaults(func=cmd_encode)

    p_ls = sub.add_parser("list", help="Decrypt the database and display its entries")
    p_ls.add_argument("-c", "--cachedir", required=True, help="The cache priv directory")
    p_ls.add_argument("-w", "--workdir", help=WORKDIR_HELP)
    p_ls.set_defaults(func=cmd_list)

    return p
