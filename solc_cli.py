import click
import json
import os

import solc_backend
import solc_compiler
from solc_backend import get_default_backend

# --- Configuration ---
ABI_FILE_PATH_TEMPLATE = "{}.abi.json"
BYTECODE_FILE_PATH_TEMPLATE = "{}.bytecode.txt"
INFO_FILE_PATH_TEMPLATE = "{}.info.json"

# Helper to pretty print JSON
def print_json(data):
    if data is not None:
        click.echo(json.dumps(data, indent=2, sort_keys=True))
    else:
        click.echo("No data to display.")

def save_contract(name, contract, output_dir):
    """Writes the ABI, bytecode and full info of one contract into output_dir."""
    os.makedirs(output_dir, exist_ok=True)
    abi_path = os.path.join(output_dir, ABI_FILE_PATH_TEMPLATE.format(name))
    with open(abi_path, 'w') as f:
        json.dump(contract.info.abi_definition, f, indent=4)
    bytecode_path = os.path.join(output_dir, BYTECODE_FILE_PATH_TEMPLATE.format(name))
    with open(bytecode_path, 'w') as f:
        f.write(contract.code)
    info_path = os.path.join(output_dir, INFO_FILE_PATH_TEMPLATE.format(name))
    with open(info_path, 'w') as f:
        json.dump(contract.info.to_dict(), f, indent=4)
    return abi_path, bytecode_path, info_path

@click.group()
def cli():
    """Solidity compiler wrapper."""
    pass

@cli.command('version')
@click.option('--full', is_flag=True, help="Also print the complete version banner.")
def version(full):
    """Shows the version of the configured solc."""
    try:
        solidity = solc_compiler.solidity_version(get_default_backend())
    except solc_compiler.SolcError as e:
        click.secho(f"Error querying solc version: {e}", fg="red")
        raise SystemExit(1)

    if solidity.version:
        click.echo(solidity.version)
    else:
        click.secho("Warning: could not find a version number in the solc banner.", fg="yellow")
    if full:
        click.echo(solidity.full_version.rstrip())

@cli.command('compile')
@click.argument('source_files', nargs=-1, required=True, type=click.Path(dir_okay=False))
@click.option('--output-dir', type=click.Path(file_okay=False), help="Directory to write <Name>.abi.json, <Name>.bytecode.txt and <Name>.info.json into.")
@click.option('--json', 'as_json', is_flag=True, help="Print the compiled contracts as JSON.")
def compile_command(source_files, output_dir, as_json):
    """Compiles one or more Solidity source files."""
    try:
        contracts = solc_compiler.compile_solidity(*source_files, backend=get_default_backend())
    except solc_compiler.MalformedOutputError as e:
        click.secho(f"Unexpected solc output: {e}", fg="red")
        raise SystemExit(1)
    except solc_compiler.SolcNotFoundError as e:
        click.secho(f"Solc is not available: {e}", fg="red")
        click.echo("Run 'solc-wrapper install' to install a compiler.")
        raise SystemExit(1)
    except solc_compiler.SolcError as e:
        click.secho(f"Solc compilation error: {e}", fg="red")
        raise SystemExit(1)
    except OSError as e:
        click.secho(f"Error reading source files: {e}", fg="red")
        raise SystemExit(1)

    if as_json:
        print_json({name: contract.to_dict() for name, contract in contracts.items()})
    elif not contracts:
        click.secho("Compilation succeeded but no contracts were produced.", fg="yellow")
    else:
        click.secho(f"Compiled {len(contracts)} contract(s) successfully!", fg="green")
        for name, contract in sorted(contracts.items()):
            suffix = "" if contract.is_linked else " (unlinked)"
            click.echo(f"  {name}: {contract.size} bytes{suffix}")

    if output_dir:
        for name, contract in sorted(contracts.items()):
            paths = save_contract(name, contract, output_dir)
            if not as_json:
                click.echo(f"  {name} saved to {', '.join(paths)}")

@cli.command('install')
@click.argument('solc_version', required=False)
def install(solc_version):
    """Installs (if needed) and selects a solc release through py-solc-x."""
    try:
        selected = solc_backend.ensure_solc(solc_version)
    except Exception as e:
        click.secho(f"Failed to install solc {solc_version or solc_backend.DEFAULT_SOLC_VERSION}: {e}", fg="red")
        raise SystemExit(1)
    click.secho(f"solc {selected} is ready.", fg="green")

if __name__ == '__main__':
    cli()
