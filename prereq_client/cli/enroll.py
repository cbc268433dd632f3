#!/usr/bin/env python3
"""
Submit the enrollment instruction (`complete`) with your GitHub username.

The prereq account is the PDA ["prereq", wallet] of the enrollment program;
program id and account layout come from the IDL (bundled by default).

Usage:
  prereq-enroll GITHUB_USERNAME [--wallet wallet.json] [--idl idl.json] [--program-id ID]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from prereq_client.chain.encoder import ProgramInterface
from prereq_client.chain.idl import load_idl
from prereq_client.cli._common import (
    EXIT_FAILED,
    add_network_args,
    add_wallet_arg,
    load_wallet,
    pipeline_from_settings,
    report,
    settings_from_args,
)
from prereq_client.config.env import explorer_address_url, get_idl_path, get_program_id
from prereq_client.errors import PrereqClientError
from prereq_client.workflows import ENROLL_METHOD, prereq_address, submit_enrollment


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Submit the enrollment transaction.")
    parser.add_argument("github", help="GitHub username to record on chain")
    add_wallet_arg(parser)
    add_network_args(parser)
    parser.add_argument("--idl", type=Path, help="Program IDL JSON (default: PREREQ_IDL_PATH or bundled)")
    parser.add_argument("--program-id", help="Program id (default: PREREQ_PROGRAM_ID or the IDL address)")
    parser.add_argument("--method", default=ENROLL_METHOD, help="Instruction name (default: complete)")
    args = parser.parse_args(argv)
    if not args.github.strip():
        parser.error("github username must be non-empty")

    settings = settings_from_args(args)
    try:
        kp = load_wallet(args)
        program = ProgramInterface(load_idl(args.idl or get_idl_path()), args.program_id or get_program_id())
        pda = prereq_address(program.program_id, kp.pubkey())
        print(f"prereq account: {pda.address} (bump {pda.bump})")
        conf = submit_enrollment(pipeline_from_settings(settings), program, kp, args.github.strip(), args.method)
    except (PrereqClientError, ValueError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    code = report(conf, settings, "enrollment")
    if conf.ok:
        print(explorer_address_url(str(pda.address), settings.network))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
