#!/usr/bin/env python3
"""
Cache decoder: edit resources stored in a game client's encrypted asset cache.

Cache layout:
  cache/
    <hash>                # blob: 8-byte IV || ChaCha20(static key, resource ciphertext)
    db/                   # LevelDB files, each one self-keyed like a blob

Every blob holds two cipher layers:
    outer  : ChaCha20 under a fixed key; the IV is stored in clear in front
    inner  : ChaCha20 under the key / IV from the resource's database record

Database record (msgpack map):
    fn        : "<scheme>:/<blob name>"
    h         : resource hash
    m.from    : URL of the server that sent the resource
    m.resource, m.filename : logical resource and file name
    m.k, m.i  : 32-byte key and 8-byte IV (raw, hex, or literal string)

Resources named *.rpf are RPF2 archives and are extracted to directories.

Commands:
  decode   Decrypt blobs into an output tree (latest version unless --duplicates)
  encode   Re-encrypt resources whose extracted files were edited
  list     Show database entries

Note: the cipher has no authentication; a wrong key silently yields garbage.
"""
import logging

from cachedecoder.ui.cli import build_parser


def main():
    parser = build_parser()
    args = parser.parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
