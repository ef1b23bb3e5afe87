import logging
import platform
from typing import List, Optional

import questionary
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from disperse import (
    AssetMode,
    MultisenderEngine,
    MultisenderError,
    PipelineState,
    PipelineStatus,
    TransactionRecord,
    format_amount,
)
from utils.helper import Web3Helper, FileHelper
from utils.wallet import LocalWalletGateway

import config

console = Console()

MODE_TITLES = {
    AssetMode.NATIVE: "CORE (native)",
    AssetMode.FUNGIBLE: "Token (ERC-20)",
    AssetMode.NFT: "NFT (ERC-721)",
}

MENU_MODE = "Switch asset mode"
MENU_TOKEN = "Load token / NFT contract"
MENU_RECIPIENTS = "Enter recipients"
MENU_SUMMARY = "Show summary"
MENU_BALANCE = "Refresh balance"
MENU_SEND = "Send"
MENU_ACCOUNT = "Switch account"
MENU_CONNECT = "Reconnect wallet"
MENU_QUIT = "Quit"


class MultisenderApp:
    def __init__(self, chain_config):
        self.console = console
        self.chain_config = chain_config
        self.key_file = chain_config.WALLET_FILE
        self.recipients_file = chain_config.RECIPIENTS_FILE

        logging.basicConfig(level=logging.INFO, handlers=[RichHandler(console=self.console)])
        self.logger = logging.getLogger(__name__)

        self.web3h = Web3Helper(chain_config)
        self.is_linux = platform.system().lower() == "linux"

        self.private_keys: List[str] = []
        self.addresses: List[str] = []
        self.gateway: Optional[LocalWalletGateway] = None
        self.engine: Optional[MultisenderEngine] = None

        for path_item, kind in ((self.key_file, "wallets"), (self.recipients_file, "recipients")):
            try:
                FileHelper.ensure_placeholder(path_item, kind)
            except OSError as e:
                self.console.log(f"[yellow]Could not ensure placeholder {kind} file {path_item}: {e}[/yellow]")

    # ---- prompts handed to the wallet gateway ----
    def confirm_signature(self, description: str) -> bool:
        return bool(questionary.confirm(f"Sign and send: {description}?", default=True).ask())

    def confirm_network_switch(self, chain_id: int) -> bool:
        return bool(questionary.confirm(f"RPC is on another network. Switch to chain {chain_id}?", default=True).ask())

    # ---- inputs ----
    def select_private_key_input_method(self):
        manual = "Manual Input (CLI)" if self.is_linux else "Manual Input (GUI)"
        choice = questionary.select("Choose private key input method:", choices=["Default Path (File)", manual]).ask()
        if choice == "Default Path (File)":
            keys, addrs = self.web3h.load_privatekeys_file(self.key_file)
        elif self.is_linux:
            keys, addrs = self.web3h.load_privatekeys_cli()
        else:
            keys, addrs = self.web3h.load_privatekeys_gui()
        if not keys:
            raise RuntimeError("No valid private keys loaded.")
        self.private_keys, self.addresses = keys, addrs
        self.console.log(f"[green]Loaded {len(addrs)} wallet(s).[/green]")

    def pick_key(self) -> str:
        if len(self.addresses) == 1:
            return self.private_keys[0]
        address = questionary.select("Send from which wallet?", choices=self.addresses).ask()
        return self.private_keys[self.addresses.index(address)] if address else self.private_keys[0]

    def select_recipients_input_method(self) -> str:
        manual = "Manual Input (CLI)" if self.is_linux else "Manual Input (GUI)"
        choice = questionary.select("Choose recipients input method:", choices=["Default Path (File)", manual]).ask()
        if choice == "Default Path (File)":
            return self.web3h.load_recipients_file(self.recipients_file)
        if self.is_linux:
            return self.web3h.load_recipients_cli()
        return self.web3h.load_recipients_gui()

    # ---- engine callbacks ----
    def on_state(self, state: PipelineState):
        if state.status == PipelineStatus.FAILED:
            return
        self.console.log(f"[cyan]Status:[/cyan] {state.status.value}")

    def on_submitted(self, record: TransactionRecord):
        self.console.log(f"[green]{record.kind.capitalize()} submitted:[/green] {record.link}")

    def report_error(self, err: MultisenderError):
        self.console.log(f"[bold red]{err.category}:[/bold red] [red]{err.message}[/red]")
        for line_err in getattr(err, "line_errors", []):
            self.console.log(f"  [red]{line_err.message}[/red]")
        link = err.context.get("link")
        if link:
            self.console.log(f"[yellow]Explorer:[/yellow] {link}")

    # ---- actions ----
    def connect(self):
        try:
            session = self.engine.connect()
        except MultisenderError as err:
            self.report_error(err)
            return
        self.console.log(f"[green]Connected[/green] {session.address} on chain {session.chain_id}")

    def switch_mode(self):
        mode = questionary.select(
            "Asset to distribute:",
            choices=[questionary.Choice(title=MODE_TITLES[m], value=m) for m in AssetMode],
        ).ask()
        if mode is None:
            return
        meta = self.engine.select_mode(mode)
        self.console.log(f"Mode: [bold]{MODE_TITLES[mode]}[/bold] ({meta.symbol}); recipients cleared")

    def load_contract(self):
        if self.engine.mode == AssetMode.NATIVE:
            self.console.log("[yellow]Native mode has no contract; switch mode first.[/yellow]")
            return
        address = questionary.text("Contract address (0x...):").ask()
        if not address:
            return
        try:
            meta = self.engine.load_token(address)
        except MultisenderError as err:
            self.report_error(err)
            return
        if meta is not None:
            self.console.log(f"[green]Loaded[/green] {meta.symbol} ({meta.decimals} decimals) {meta.address}")
            if meta.icon:
                self.console.log(f"Icon: {meta.icon}")

    def enter_recipients(self):
        text = self.select_recipients_input_method()
        request = self.engine.set_recipients(text)
        self.console.log(f"Parsed {request.count} recipient(s), {len(request.errors)} invalid line(s)")
        self.show_summary()

    def refresh_balance(self):
        snapshot = self.engine.refresh_balance()
        if not snapshot.known:
            self.console.log("[yellow]Balance unavailable[/yellow]")
        elif snapshot.stale:
            self.console.log(f"[yellow]Balance (stale): {format_amount(snapshot.amount)}[/yellow]")
        else:
            self.console.log(f"Balance: {format_amount(snapshot.amount)} {self.engine.metadata.symbol}")

    def show_summary(self):
        request = self.engine.request
        meta = self.engine.metadata
        nft = request.mode == AssetMode.NFT

        table = Table(title=f"{MODE_TITLES[request.mode]} distribution ({meta.symbol})")
        table.add_column("Line", justify="right")
        table.add_column("Recipient")
        table.add_column("Token ID" if nft else "Amount", justify="right")
        for entry in request.entries:
            table.add_row(str(entry.line_number), entry.address,
                          str(entry.value) if nft else format_amount(entry.value))
        self.console.print(table)

        for err in request.errors:
            self.console.log(f"[red]{err.message}[/red]")

        agg = request.aggregate
        self.console.print(f"[bold]Recipients:[/bold] {agg.count}")
        if nft:
            if agg.balance is not None:
                self.console.print(f"[bold]Owned:[/bold] {agg.balance:.0f}")
            return
        self.console.print(f"[bold]Total:[/bold] {agg.total_display} {meta.symbol}")
        if agg.balance is None:
            self.console.print("[bold]Balance:[/bold] unknown")
            return
        stale = " (stale)" if self.engine.balance.stale else ""
        self.console.print(f"[bold]Balance:[/bold] {format_amount(agg.balance)} {meta.symbol}{stale}")
        colour = "red" if agg.remaining < 0 else "green"
        self.console.print(f"[bold]Remaining:[/bold] [{colour}]{agg.remaining_display}[/{colour}]")

    def send(self):
        blockers = self.engine.submit_blockers()
        if blockers:
            for reason in blockers:
                self.console.log(f"[yellow]Cannot send: {reason}[/yellow]")
            return
        self.show_summary()
        if not questionary.confirm("Proceed with this distribution?").ask():
            return
        try:
            record = self.engine.submit(on_submitted=self.on_submitted)
        except MultisenderError as err:
            self.report_error(err)
            self.console.log("[yellow]Recipients kept; correct them and send again.[/yellow]")
            return
        self.console.rule("[bold]Done[/bold]")
        self.console.print(f"[bold green]Confirmed in block {record.block_number}:[/bold green] {record.link}")
        self.refresh_balance()

    def switch_account(self):
        self.gateway.switch_account(self.pick_key())
        self.connect()

    def run(self):
        self.select_private_key_input_method()
        self.gateway = LocalWalletGateway(self.web3h, self.pick_key(),
                                          confirm=self.confirm_signature,
                                          network_prompt=self.confirm_network_switch)
        self.engine = MultisenderEngine(self.gateway, self.web3h, self.chain_config,
                                        invalid_line_policy=config.INVALID_LINE_POLICY,
                                        logo_resolver=self.web3h.fetch_token_logo)
        self.engine.add_listener(self.on_state)

        with self.engine:
            self.gateway.start_watcher()
            try:
                self.connect()
                self.menu()
            finally:
                self.gateway.stop_watcher()

    def menu(self):
        actions = {
            MENU_MODE: self.switch_mode,
            MENU_TOKEN: self.load_contract,
            MENU_RECIPIENTS: self.enter_recipients,
            MENU_SUMMARY: self.show_summary,
            MENU_BALANCE: self.refresh_balance,
            MENU_SEND: self.send,
            MENU_ACCOUNT: self.switch_account,
            MENU_CONNECT: self.connect,
        }
        while True:
            self.console.rule(f"[bold cyan]{MODE_TITLES[self.engine.mode]} | {self.engine.state.status.value}[/bold cyan]")
            choices = list(actions) + [MENU_QUIT]
            if len(self.addresses) < 2:
                choices.remove(MENU_ACCOUNT)
            choice = questionary.select("What next?", choices=choices).ask()
            if choice is None or choice == MENU_QUIT:
                return
            actions[choice]()


def main():
    chain_selection = questionary.select("Select chain:", choices=list(config.CHAINS)).ask()
    chain_config = config.CHAINS.get(chain_selection, config.CORE)
    if not chain_config.DISPERSE_ADDRESS:
        console.log(f"[bold red]No disperse contract configured for {chain_config.CHAIN_NAME}. "
                    f"Set CORE_TESTNET_DISPERSE_ADDRESS in .env[/bold red]")
        return

    app = MultisenderApp(chain_config)
    app.run()


if __name__ == "__main__":
    main()
