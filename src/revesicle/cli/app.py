# src/revesicle/cli/app.py
import argparse
import logging
import sys
from pathlib import Path

from revesicle.errors import ReVesicleError

DESCRIPTIONS = {
    'run': 'Shell-based vesicle cleanup: phases 1A-3A, 1B-3B, 4 (water/lipid shell removal + NAMD) and 5 (production).',
    'inspect': 'Print the geometry estimate and shell radii for a structure/trajectory pair (no files written).',
    'update-cell': 'Rewrite cellBasisVector1-3/cellOrigin lines of NAMD conf files from the last record of an .xst file.',
}


class _Parser(argparse.ArgumentParser):
    """Argument errors exit with status 1 like every other invalid input."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _add_run(sub):
    sp = sub.add_parser('run', help=DESCRIPTIONS['run'], description=DESCRIPTIONS['run'])
    sp.add_argument('--d1', '-d1', dest='d1', required=True, help='Inner offset of the water shell (A)')
    sp.add_argument('--d2', '-d2', dest='d2', required=True, help='Outer offset of the water shell (A)')
    sp.add_argument('--structure', '-js', dest='structure', required=True, help='Input topology (.psf)')
    sp.add_argument('--trajectory', '-dcd', dest='trajectory', required=True, help='Input trajectory (.dcd); last frame is used')
    sp.add_argument('--xst', '-xst', dest='xst', required=True, help='Extended system file; its last record sets the cell')
    sp.add_argument('--remove-lipids', '-remove_lipids', dest='remove_lipids', default='off', help='on|off (default off)')
    sp.add_argument('--d3', '-d3', dest='d3', help='Inner offset of the lipid shell (required with --remove-lipids on)')
    sp.add_argument('--d4', '-d4', dest='d4', help='Outer offset of the lipid shell (required with --remove-lipids on)')
    sp.add_argument('--striptraj', '-striptraj', dest='striptraj', default='yes', help='yes|no: write solute-only trajectories (default yes)')
    sp.add_argument('--run-steps', '-run_steps', dest='run_steps', default='all', help='all | 1234 | 5 (default all)')
    sp.add_argument('--workdir', default='.', help='Working directory holding script/ and the phase folders')
    sp.add_argument('--scripts-dir', help='Folder with the staged NAMD conf files (default <workdir>/script)')
    sp.add_argument('--config', help='Optional path to revesicle.toml')
    sp.add_argument('--seed', help='Seed for the counter-ion draw')
    sp.add_argument('--log-console', action='store_true', help='Mirror the log to stderr')
    return sp


def _add_inspect(sub):
    sp = sub.add_parser('inspect', help=DESCRIPTIONS['inspect'], description=DESCRIPTIONS['inspect'])
    sp.add_argument('--structure', '-js', dest='structure', required=True)
    sp.add_argument('--trajectory', '-dcd', dest='trajectory', required=True)
    sp.add_argument('--d1', '-d1', dest='d1', required=True)
    sp.add_argument('--d2', '-d2', dest='d2', required=True)
    sp.add_argument('--d3', '-d3', dest='d3')
    sp.add_argument('--d4', '-d4', dest='d4')
    sp.add_argument('--config', help='Optional path to revesicle.toml (residue classes)')
    return sp


def _add_update_cell(sub):
    sp = sub.add_parser('update-cell', help=DESCRIPTIONS['update-cell'], description=DESCRIPTIONS['update-cell'])
    sp.add_argument('xst')
    sp.add_argument('confs', nargs='+')
    return sp


def build_parser() -> argparse.ArgumentParser:
    p = _Parser('revesicle')
    p.add_argument('--version', action='store_true', help='Print the version and exit')
    sub = p.add_subparsers(dest='cmd')
    _add_run(sub)
    _add_inspect(sub)
    _add_update_cell(sub)
    return p


def _cmd_run(args) -> int:
    # Imported lazily: the NAMD adapter imports revesicle.cli.run_commands
    from revesicle.adapters.namd import NamdEngine
    from revesicle.config.loader import dump_config, load_config
    from revesicle.domain.residues import ResidueClasses
    from revesicle.infra.logging import log_run_header, setup_logging
    from revesicle.pipeline.orchestrator import run_pipeline
    from revesicle.pipeline.settings import build_settings

    workdir = Path(args.workdir).resolve()
    cfg = load_config(workdir, args.config)
    seed = args.seed if args.seed is not None else cfg.charge.seed
    settings = build_settings(
        d1=args.d1,
        d2=args.d2,
        structure=args.structure,
        trajectory=args.trajectory,
        xst=args.xst,
        workdir=workdir,
        scripts_dir=args.scripts_dir or cfg.scripts_dir,
        run_mode=args.run_steps,
        remove_lipids=args.remove_lipids,
        d3=args.d3,
        d4=args.d4,
        striptraj=args.striptraj,
        seed=seed,
    )

    step_log = workdir / 'step.log'
    setup_logging(step_log, also_console=args.log_console)
    log_run_header('run')
    dump_config(cfg, log_fn=logging.info)
    report = run_pipeline(
        settings,
        NamdEngine.from_config(cfg.engine),
        ResidueClasses.from_config(cfg.selection),
        fragment_strategy=cfg.fragments.strategy,
        offset_table=cfg.fragments.offset_table,
        compare_fragment_strategies=cfg.fragments.compare,
        log_console=args.log_console,
        step_log=step_log,
    )
    if not report.ok:
        print(f"[revesicle] failed at {report.failed_at}: {report.error}", file=sys.stderr)
        return 1
    logging.info(f"[pipeline] final state: {report.state.value} ({', '.join(report.completed)})")
    return 0


def _cmd_inspect(args) -> int:
    from revesicle.config.loader import load_config
    from revesicle.domain.geometry import estimate_geometry
    from revesicle.domain.residues import ResidueClasses
    from revesicle.domain.shells import MembershipRule, ShellSpec, classify_residues, split_shell
    from revesicle.io.structure import load_structure
    from revesicle.pipeline.settings import parse_offset

    cfg = load_config(Path.cwd(), args.config)
    classes = ResidueClasses.from_config(cfg.selection)
    water = ShellSpec(parse_offset(args.d1, '-d1'), parse_offset(args.d2, '-d2'))
    lipid = None
    if args.d3 is not None or args.d4 is not None:
        lipid = ShellSpec(parse_offset(args.d3, '-d3'), parse_offset(args.d4, '-d4'))

    structure = load_structure(args.structure, args.trajectory)
    geometry = estimate_geometry(structure, classes.lipids())
    for line in geometry.log_lines():
        print(line)
    r_in, r_out = water.radii(geometry)
    waters = classify_residues(structure, geometry, water, classes.removable_waters(), MembershipRule.ANY_ATOM)
    split = split_shell(structure, geometry, water, waters)
    print(f"water shell: r_inner = {r_in:.3f}, r_outer = {r_out:.3f}, r_mid = {split.r_mid:.3f}")
    print(f"water residues in shell (total inner outer): {split.summary_line()}")
    if lipid is not None:
        r_in, r_out = lipid.radii(geometry)
        heads = classify_residues(structure, geometry, lipid, classes.lipid_heads(), MembershipRule.HEAD)
        glyco = classify_residues(structure, geometry, lipid, classes.glycolipid_heads(), MembershipRule.HEAD)
        print(f"lipid shell: r_inner = {r_in:.3f}, r_outer = {r_out:.3f}")
        print(f"flipped lipids: {len(heads)}, glycolipid heads: {len(glyco)}")
    return 0


def _cmd_update_cell(args) -> int:
    from revesicle.io.cell import update_conf_files

    record = update_conf_files(args.xst, args.confs)
    print(f"updated {len(args.confs)} file(s) from step {record.step}")
    return 0


COMMANDS = {
    'run': _cmd_run,
    'inspect': _cmd_inspect,
    'update-cell': _cmd_update_cell,
}


def main(argv=None) -> int:
    # Be talkative by default unless caller configured logging already
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    p = build_parser()
    args = p.parse_args(argv)
    if args.version:
        from revesicle import __version__
        print(f"revesicle {__version__}")
        return 0
    if not args.cmd:
        p.print_help(sys.stderr)
        return 1
    try:
        return COMMANDS[args.cmd](args)
    except ReVesicleError as e:
        print(f"[revesicle] {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
