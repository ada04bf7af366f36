START_SETUP = "Type /start to initiate the setup process."

ALREADY_STARTED = (
    "You have already started the setup. Type /reset to discard it and begin again."
)

ASK_LEDGER_URL = (
    "Please enter your *Firefly III* server's URL (e.g. https://my-firefly-iii.com).\n\n"
    "It must start with HTTP/s protocol scheme."
)

ASK_LEDGER_TOKEN = (
    "Your *Firefly III* URL's been saved!\n\n"
    "Now please enter your firefly *Personal Access Token* (PAT), you can generate it "
    "from PAT section here - {ledger_url}/profile"
)

SETUP_COMPLETE = "Setup complete. You can now use the telegram bot to store your transaction."

RESET_COMPLETE = "Reset complete."

ACK = "Message Ack"

TRANSACTION_CREATED = "Transaction created: {type} of {amount} for {description} ({source} -> {destination})."

PARSE_FAILED = "{reason}\nType /help to see how to describe a transaction."

OPERATOR_REPORT = "Ledger bot error: {message}"

EMPTY_TOKEN = "The access token cannot be empty. Please paste your Personal Access Token."
