# Template di configurazione openssl.
# Il Subject Alternative Name arriva dalla variabile d'ambiente ALTNAME,
# che deve essere sempre definita (anche vuota) al caricamento del file.

PKI_CONFIGURATION_TEMPLATE = """\
[ req ]
default_bits            = 2048
default_md              = sha256
distinguished_name      = req_distinguished_name
string_mask             = utf8only
prompt                  = no

[ req_distinguished_name ]
commonName              = localhost

[ v3_req ]
basicConstraints        = CA:FALSE
keyUsage                = nonRepudiation, digitalSignature, keyEncipherment, dataEncipherment, keyAgreement
subjectAltName          = $ENV::ALTNAME

[ v3_selfsigned ]
basicConstraints        = critical, CA:FALSE
keyUsage                = critical, nonRepudiation, digitalSignature, keyEncipherment, dataEncipherment, keyAgreement, keyCertSign
extendedKeyUsage        = clientAuth, serverAuth
subjectKeyIdentifier    = hash
authorityKeyIdentifier  = keyid,issuer
subjectAltName          = $ENV::ALTNAME
"""

CA_CONFIGURATION_TEMPLATE = """\
[ ca ]
default_ca              = CA_default

[ CA_default ]
dir                     = %%ROOT_FOLDER%%
certs                   = $dir/certs
crl_dir                 = $dir/crl
database                = $dir/index.txt
unique_subject          = no
new_certs_dir           = $dir/certs
certificate             = $dir/public/cacert.pem
serial                  = $dir/serial
crlnumber               = $dir/crlnumber
crl                     = $dir/crl/revocation_list.crl
private_key             = $dir/private/cakey.pem
RANDFILE                = $dir/private/random.rnd
x509_extensions         = v3_issued
crl_extensions          = crl_ext
name_opt                = ca_default
cert_opt                = ca_default
copy_extensions         = copy
default_days            = 365
default_crl_days        = 30
default_md              = sha256
preserve                = no
policy                  = policy_anything

[ policy_anything ]
countryName             = optional
stateOrProvinceName     = optional
localityName            = optional
organizationName        = optional
organizationalUnitName  = optional
commonName              = optional
domainComponent         = optional
emailAddress            = optional

[ req ]
default_bits            = 4096
default_md              = sha256
distinguished_name      = req_distinguished_name
string_mask             = utf8only
prompt                  = no

[ req_distinguished_name ]
commonName              = Certificate Authority

[ v3_req ]
basicConstraints        = CA:FALSE
keyUsage                = nonRepudiation, digitalSignature, keyEncipherment, dataEncipherment, keyAgreement
subjectAltName          = $ENV::ALTNAME

[ v3_ca ]
subjectKeyIdentifier    = hash
authorityKeyIdentifier  = keyid:always,issuer:always
basicConstraints        = critical, CA:TRUE
keyUsage                = critical, cRLSign, keyCertSign

[ v3_selfsigned ]
basicConstraints        = critical, CA:FALSE
keyUsage                = critical, nonRepudiation, digitalSignature, keyEncipherment, dataEncipherment, keyAgreement, keyCertSign
extendedKeyUsage        = clientAuth, serverAuth
subjectKeyIdentifier    = hash
authorityKeyIdentifier  = keyid,issuer
subjectAltName          = $ENV::ALTNAME

[ v3_issued ]
basicConstraints        = critical, CA:FALSE
keyUsage                = critical, nonRepudiation, digitalSignature, keyEncipherment, dataEncipherment, keyAgreement
extendedKeyUsage        = clientAuth, serverAuth
subjectKeyIdentifier    = hash
authorityKeyIdentifier  = keyid,issuer
subjectAltName          = $ENV::ALTNAME

[ crl_ext ]
authorityKeyIdentifier  = keyid:always
"""


def render_ca_configuration(root_folder: str) -> str:
    """Configurazione della CA con la directory radice sostituita."""
    return CA_CONFIGURATION_TEMPLATE.replace("%%ROOT_FOLDER%%", root_folder.replace("\\", "/"))
