"""Constants shared across tests."""
import json

TEST_REGION = "us-east-1"
TEST_STACK_NAME = "cmis-test-stack"
TEST_KEY_PAIR_NAME = "cmis-test-keypair"
TEST_PARAMETER_NAME = "/cmis-test/database/password"
MOTO_ACCOUNT_ID = "123456789012"

TEST_PUBLIC_IP = "203.0.113.10"
TEST_DB_ENDPOINT = "cmis-db.abc123.us-east-1.rds.amazonaws.com"
TEST_APP_URL = "http://ec2-203-0-113-10.compute-1.amazonaws.com"

# Small stand-in for aws-deployment.yml that moto can create
TEST_TEMPLATE = json.dumps({
    "AWSTemplateFormatVersion": "2010-09-09",
    "Description": "CMIS test stack",
    "Parameters": {
        "KeyPairName": {"Type": "String"},
        "InstanceType": {"Type": "String", "Default": "t3.medium"},
        "DatabasePasswordParameter": {"Type": "String", "Default": "/cmis/database/password"},
    },
    "Resources": {
        "AssetsBucket": {"Type": "AWS::S3::Bucket"},
    },
    "Outputs": {
        "PublicIP": {"Value": TEST_PUBLIC_IP},
        "DatabaseEndpoint": {"Value": TEST_DB_ENDPOINT},
        "ApplicationURL": {"Value": TEST_APP_URL},
        "InstanceTypeUsed": {"Value": {"Ref": "InstanceType"}},
        "PasswordParameterUsed": {"Value": {"Ref": "DatabasePasswordParameter"}},
    },
})
