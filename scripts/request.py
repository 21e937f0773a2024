import json
from argparse import ArgumentParser

from nbclassifier.client.client import NaiveBayesAPIClient


def main() -> None:
    """
    Send one request to the service from the command line.

    Trains a model with one labeled message, or predicts the class of a
    message, and prints the JSON response.

    Examples
    --------
        python scripts/request.py -u http://localhost:8080 -n demo \\
            train -c China -m "Chinese Beijing Chinese"
        python scripts/request.py -u http://localhost:8080 -n demo \\
            predict -m "Chinese Chinese Chinese Tokyo Japan"
    """
    parser = ArgumentParser("request.py")

    parser.add_argument(
        "--url",
        "-u",
        type=str,
        required=True,
        help="Base URL of the service (e.g., http://localhost:8080)",
    )
    parser.add_argument("--name", "-n", type=str, required=True, help="Model name")
    parser.add_argument(
        "--create",
        action="store_true",
        help="Create the model first if it does not exist yet",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    train = commands.add_parser("train", help="Train the model with a message")
    train.add_argument(
        "--classes",
        "-c",
        type=str,
        required=True,
        help="Comma separated class labels of the message",
    )
    train.add_argument("--message", "-m", type=str, required=True)

    predict = commands.add_parser("predict", help="Classify a message")
    predict.add_argument("--message", "-m", type=str, required=True)

    args = parser.parse_args()

    client = NaiveBayesAPIClient(args.url)

    if args.create and not any(
        model["name"] == args.name for model in client.list_models(load_all=True)
    ):
        client.create_model(args.name)

    if args.command == "train":
        response = client.train(args.name, args.classes.split(","), args.message)
    else:
        response = client.predict(args.name, args.message)

    print(json.dumps(response, indent=2))


if __name__ == "__main__":
    main()
